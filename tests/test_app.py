"""
Tests for the Streamlit page helpers.

The script is loaded as a module outside a Streamlit server; only the pure
helpers are exercised.
"""

import importlib.util
import pytest
from pathlib import Path
from unittest.mock import patch


APP_PATH = Path(__file__).resolve().parent.parent / "app" / "main.py"


@pytest.fixture(scope="module")
def app_main():
    spec = importlib.util.spec_from_file_location("finance_pro_app", APP_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestAdviceMarkup:
    """Tests for the advice box."""

    def test_model_text_is_escaped(self, app_main):
        """Test markup in advice is shown as text."""
        markup = app_main.advice_markup('<img src=x onerror="alert(1)"> Save more & spend less')
        assert "<img" not in markup
        assert "&lt;img src=x onerror=&quot;alert(1)&quot;&gt;" in markup
        assert "Save more &amp; spend less" in markup

    def test_plain_advice_unchanged(self, app_main):
        """Test ordinary advice passes through."""
        assert "<p>Keep going.</p>" in app_main.advice_markup("Keep going.")


class TestFlash:
    """Tests for success messages kept across a rerun."""

    def test_message_shown_once_after_rerun(self, app_main):
        """Test flash stores the message and show_flash consumes it."""
        state = {}
        app_main.flash("✅ Added Wallet", state)
        assert state == {"flash": "✅ Added Wallet"}

        with patch.object(app_main, "st") as st_mock:
            app_main.show_flash(state)
            app_main.show_flash(state)

        st_mock.success.assert_called_once_with("✅ Added Wallet")
        assert state == {}
