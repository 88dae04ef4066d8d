"""Identity and access: sessions, roles and route guards."""
