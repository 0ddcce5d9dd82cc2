from gotodocker.cli import main

raise SystemExit(main())
