import sys

from tcplatency.cli import main

sys.exit(main())
