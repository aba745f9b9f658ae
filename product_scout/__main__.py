import sys

from product_scout.cli import main

sys.exit(main())
