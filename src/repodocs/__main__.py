from repodocs.cli import main

raise SystemExit(main())
