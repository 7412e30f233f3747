"""Run the frozen balance release manually.

Usage:
    cd backend
    python -m scripts.run_release_job
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from app.core.logging import setup_logging
from app.modules.wallet.tasks import run_balance_release


async def main():
    """Release every matured sale once."""
    setup_logging(level="INFO", json_format=False)

    print("\n" + "=" * 60)
    print("Releasing Frozen Balances")
    print("=" * 60)

    stats = await run_balance_release()

    print(f"\nResults:")
    print(f"  Released: {stats['released']}")
    print(f"  Skipped: {stats['skipped']}")
    print(f"  Failed: {stats['failed']}")
    print(f"  Amount (cents): {stats['amount']}")


if __name__ == "__main__":
    asyncio.run(main())
