import sys

from slotting.cli import main

sys.exit(main())
