# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Automated quote replies for a Microsoft 365 support inbox.

Components:
- catalog: item catalog and trusted customer domains (CSV)
- matching: item matching and inclusion decisions
- reply: quote reply composition
- auth: access token lifecycle (cache, refresh, interactive login)
- mailbox: Microsoft Graph mailbox adapter
- audit: per-run audit CSV
- runner: batch orchestration
- cli: ``quotemail`` entry point
"""
