from commerce.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.environment == "development"
        assert settings.return_window_days == 30
        assert settings.reservation_ttl_minutes == 15
        assert settings.inventory_store == "memory"
        assert settings.is_production is False

    def test_reads_environment(self):
        settings = Settings.from_env(
            {
                "PROTEAN_ENV": "production",
                "COMMERCE_RETURN_WINDOW_DAYS": "14",
                "COMMERCE_RESERVATION_TTL_MINUTES": "5",
                "COMMERCE_INVENTORY_STORE": "sql",
                "COMMERCE_DATABASE_URI": "sqlite:///tmp.db",
                "COMMERCE_WEBHOOK_SECRET": "whsec",
            }
        )
        assert settings.is_production is True
        assert settings.return_window_days == 14
        assert settings.reservation_ttl_minutes == 5
        assert settings.inventory_store == "sql"
        assert settings.database_uri == "sqlite:///tmp.db"
        assert settings.webhook_secret == "whsec"
