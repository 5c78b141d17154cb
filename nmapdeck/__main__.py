import sys

from nmapdeck.cli import main

sys.exit(main())
