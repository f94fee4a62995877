import sys

from eq_coach.cli import main

sys.exit(main())
