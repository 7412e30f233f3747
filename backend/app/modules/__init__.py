"""Application modules.

- payment_gateway: PIX provider adapters and registry
- payment: Checkout and payment status
- webhook: Provider notification processing
- ledger: Double-entry ledger
- wallet: Wallets, balance release and payouts
- catalog: Packs and legacy purchases
- auth: User profiles
"""
