"""Scenario pools: bundled static tables plus best-effort generation by the oracle."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, List, Optional

from eq_coach.config import Config
from eq_coach.models import DEFAULT_MODE, Mode, Scenario, normalize_mode

logger = logging.getLogger(__name__)


QUICK_SCENARIOS: Dict[str, List[Scenario]] = {
    "work": [
        Scenario("临时改需求", "临下班5分钟，甲方发来第10版修改意见，推翻核心逻辑，还要求今晚改完再走。"),
        Scenario("被甩锅", "第三方接口挂了导致项目延期，周会上同事却暗示是你跟进不到位。"),
        Scenario("拒绝白嫖", "隔壁部门领导说“就帮我看一眼”，结果想把整个模块甩给你，没有任何排期。"),
        Scenario("微管理", "老板每隔10分钟就问一次进度，连你邮件的标点符号都要逐字修改。"),
        Scenario("被抢功劳", "你熬夜做的方案，同事在汇报会上拿着你的PPT侃侃而谈，老板还夸他做得好。"),
    ],
    "relationship": [
        Scenario("爱搭不理", "TA下班回家就瘫在沙发上刷视频，你做了一桌菜，叫吃饭要催三遍。"),
        Scenario("家务失衡", "约定好轮流做家务，这周已经是你连续第5天洗碗，TA吃完就去打游戏。"),
        Scenario("冷暴力", "昨天吵架后TA一直冷战，把家里当旅馆，问什么都不说话。"),
        Scenario("双重标准", "TA可以和朋友喝到半夜，你晚回一点就被连环电话追问。"),
        Scenario("纪念日被忘", "结婚纪念日你精心准备了礼物，TA空手回家，还问你今天吃什么。"),
    ],
}


def static_scenarios(mode: Optional[str]) -> List[Scenario]:
    return list(QUICK_SCENARIOS.get(normalize_mode(mode), QUICK_SCENARIOS[DEFAULT_MODE]))


def pick_scenario(mode: Optional[str], exclude: Optional[Scenario] = None,
                  rng: Optional[random.Random] = None,
                  pool: Optional[List[Scenario]] = None) -> Scenario:
    """Random scenario, re-drawing (best effort, 3 attempts) when it repeats the current one."""
    rng = rng or random
    pool = pool or static_scenarios(mode)
    choice = rng.choice(pool)
    attempts = 1
    while exclude is not None and len(pool) > 1 and choice.label == exclude.label and attempts < 3:
        choice = rng.choice(pool)
        attempts += 1
    return choice


class ScenarioService:
    """
    Scenarios are cosmetic: generation is a best-effort enhancement with a hard
    timeout, and any failure degrades to the static pool. Never raises.
    """

    def __init__(self, coach=None, timeout: Optional[float] = None):
        self.coach = coach
        self.timeout = timeout if timeout is not None else Config.SCENARIO_TIMEOUT_SECONDS

    async def get_scenarios(self, mode: Optional[str]) -> List[Scenario]:
        mode: Mode = normalize_mode(mode)
        logger.info(f"[SCENARIOS] Request for mode={mode}")

        if self.coach is None or not self.coach.configured:
            logger.info("[SCENARIOS] No API key configured, using static scenarios")
            return static_scenarios(mode)

        try:
            return await asyncio.wait_for(
                self.coach.generate_scenarios(mode, timeout=self.timeout), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"[SCENARIOS] Generation timed out after {self.timeout}s, using static scenarios")
        except Exception as e:
            logger.warning(f"[SCENARIOS] Generation failed, using static scenarios: {e!r}")
        return static_scenarios(mode)
