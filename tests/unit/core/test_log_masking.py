import pytest

pytestmark = pytest.mark.unit


class TestSensitiveDataMasking:
    def test_password_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "data": "password='s3cret123'"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "s3cret123" not in result["data"]
        assert "***MASKED***" in result["data"]

    def test_token_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "header": "token=abc123xyz"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "abc123xyz" not in result["header"]
        assert "***MASKED***" in result["header"]

    def test_signature_key_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "external_signature": "a1b2c3"}
        result = mask_sensitive_data(None, None, event_dict)
        assert result["external_signature"] == "***MASKED***"

    def test_signature_inside_text_masked(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "test", "detail": "signature=f00dfeed rejected"}
        result = mask_sensitive_data(None, None, event_dict)
        assert "f00dfeed" not in result["detail"]

    def test_non_sensitive_data_unchanged(self):
        from config.settings import mask_sensitive_data

        event_dict = {"event": "order.created", "order_number": "FLW-20260101-ABCDEF"}
        result = mask_sensitive_data(None, None, dict(event_dict))
        assert result == event_dict
