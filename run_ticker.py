#!/usr/bin/env python3
"""
Run the OKX Ticker.

Usage:
    python run_ticker.py [--pairs ID1,ID2,...] [--mode row|carousel] [options]

Examples:
    python run_ticker.py                                   # BTC/ETH perps, one row each
    python run_ticker.py --pairs BTC-USDT,BTC-USDT-SWAP -a enable
    python run_ticker.py --mode carousel --interval 3000
    python run_ticker.py --config settings.json --log-file ticker.log
"""

import sys

from okx_ticker.viewer import main

if __name__ == '__main__':
    print("""
    ╔══════════════════════════════════════════════════════════════╗
    ║                         OKX TICKER                           ║
    ╠══════════════════════════════════════════════════════════════╣
    ║  Fetching snapshots and streaming live candle prices...      ║
    ║  Press Ctrl+C to exit                                        ║
    ╚══════════════════════════════════════════════════════════════╝
    """)
    sys.exit(main())
