"""Merge request to Telegram notification sync."""
