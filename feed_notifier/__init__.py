"""Feed notifier: forwards new RSS posts matching keyword/AI filters to Telegram."""
