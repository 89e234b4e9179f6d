from unittest.mock import patch

from src.core.utils.logging import PIIMaskingProcessor


class TestPIIMaskingProcessor:

    def test_masks_contact_data_in_production(self):
        processor = PIIMaskingProcessor()
        event = {
            "event": "Message sent to user@example.com",
            "to": "+5511999998888",
            "message_id": "5511999998888",
        }

        with patch("src.core.utils.logging.settings") as mock_settings:
            mock_settings.api.environment = "production"
            result = processor(None, "info", event)

        assert result["event"] == "Message sent to [EMAIL_REDACTED]"
        assert result["to"] == "[PHONE_REDACTED]"
        assert result["message_id"] == "5511999998888"

    def test_noop_outside_production(self):
        processor = PIIMaskingProcessor()
        event = {"event": "Message sent to user@example.com"}

        with patch("src.core.utils.logging.settings") as mock_settings:
            mock_settings.api.environment = "development"
            result = processor(None, "info", event)

        assert result["event"] == "Message sent to user@example.com"

    def test_ignores_non_string_values(self):
        processor = PIIMaskingProcessor()
        event = {"event": "Requeued", "count": 3}

        with patch("src.core.utils.logging.settings") as mock_settings:
            mock_settings.api.environment = "production"
            result = processor(None, "info", event)

        assert result["count"] == 3
