import sys

from instance_store.main import main

sys.exit(main())
