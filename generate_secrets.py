#!/usr/bin/env python3
"""
Generate secure secrets for the pickpool backend
Prints SECRET_KEY, WTF_CSRF_SECRET_KEY and CRON_SECRET lines for a .env file
"""

import secrets


def generate_secrets():
    """Generate secure random keys for the application"""
    print("🔐 Generating secure secrets for pickpool...")
    print("=" * 50)

    for name in ("SECRET_KEY", "WTF_CSRF_SECRET_KEY", "CRON_SECRET"):
        print(f"{name}={secrets.token_urlsafe(32)}")

    print("=" * 50)
    print("📝 Copy these values to your .env file")
    print("⚠️  Keep these secrets secure and never commit them to version control!")


if __name__ == "__main__":
    generate_secrets()
