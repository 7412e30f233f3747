"""PIX Settlement Backend Application.

Settlement core for a marketplace where creators sell content packs and are
paid through PIX providers.

Modules:
    - core: Configuration, database, logging, tracing, metrics, Celery setup
    - modules.payment_gateway: PIX provider adapters and the gateway registry
    - modules.payment: Pack checkout and payment status reconciliation
    - modules.webhook: Provider webhook ingestion
    - modules.ledger: Append-only double-entry ledger
    - modules.wallet: Creator wallets, balance release job and payouts
    - modules.catalog: Pack and legacy purchase records (read-only)
    - modules.auth: User profile records (read-only)
"""

__version__ = "0.1.0"
