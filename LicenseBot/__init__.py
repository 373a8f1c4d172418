"""
License Bot

Slash-command license validation/renewal on a Google Sheet, with role sync and
daily expiry reminders.
"""
