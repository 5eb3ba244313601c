from netsimulate.cli import main

raise SystemExit(main())
