from okx_ticker.viewer import main

raise SystemExit(main())
