"""
Embyvault Test Suite

Tests for:
- Admin authentication and session tokens
- Emby REST client against a fake Emby server
- Membership recharge, end-date and expiration logic
- Webhook processing and new-content deduplication
- Email notification delivery log
- System settings and the expiration schedule
"""
