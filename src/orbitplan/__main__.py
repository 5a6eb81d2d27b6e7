import sys

from orbitplan.main import main

sys.exit(main())
