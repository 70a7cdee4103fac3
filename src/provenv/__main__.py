from provenv.cli import main

raise SystemExit(main())
