"""
RF定位回放程序入口
用法: python main.py --log scans.jsonl [--db emitters.db] [--debug]
"""

import sys

from rfloc_core.cli import main


if __name__ == "__main__":
    sys.exit(main())
