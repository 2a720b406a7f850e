"""Authentication: sessions, credentials, two-factor, passkeys and social sign-in."""
