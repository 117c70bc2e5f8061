"""
Shared pytest fixtures for Snarkifier tests.
"""

import pytest
import sys
import importlib.util
from pathlib import Path
from unittest.mock import MagicMock

# Project root for finding Cloud Function modules
PROJECT_ROOT = Path(__file__).parent.parent


def _load_module_from_path(module_name: str, file_path: Path):
    """Load a module from a specific file path."""
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


# Load the Cloud Function module with a unique name at module load time
_snarkify_module = _load_module_from_path(
    'snarkify_function_main',
    PROJECT_ROOT / 'snarkify-function' / 'main.py'
)


@pytest.fixture
def snarkify_module():
    """Returns the loaded snarkify-function module."""
    return _snarkify_module


# ============================================================================
# Snarkify Function Fixtures
# ============================================================================

@pytest.fixture
def fetch_page():
    """Returns fetch_page function from snarkify-function."""
    return _snarkify_module.fetch_page


@pytest.fixture
def select_candidate_links():
    """Returns select_candidate_links function from snarkify-function."""
    return _snarkify_module.select_candidate_links


@pytest.fixture
def harvest_context():
    """Returns harvest_context function from snarkify-function."""
    return _snarkify_module.harvest_context


@pytest.fixture
def collect_context_notes():
    """Returns collect_context_notes function from snarkify-function."""
    return _snarkify_module.collect_context_notes


@pytest.fixture
def extract_upload_content():
    """Returns extract_upload_content function from snarkify-function."""
    return _snarkify_module.extract_upload_content


@pytest.fixture
def load_config():
    """Returns load_config function from snarkify-function."""
    return _snarkify_module.load_config


@pytest.fixture
def request_roast():
    """Returns request_roast function from snarkify-function."""
    return _snarkify_module.request_roast


@pytest.fixture
def snarkify_config(tmp_path):
    """Config with a private upload dir and no persona override file."""
    return _snarkify_module.SnarkifierConfig(
        openai_api_key='test-key',
        openai_model='gpt-4o-mini',
        system_prompt_path=str(tmp_path / 'prompts' / 'system.txt'),
        upload_dir=str(tmp_path / 'uploads'),
    )


@pytest.fixture
def make_completion_client():
    """Factory for mock OpenAI clients returning a fixed completion."""
    def _make(content='Oh great, another think piece. Riveting.'):
        message = MagicMock()
        message.content = content
        choice = MagicMock()
        choice.message = message

        client = MagicMock()
        client.chat.completions.create.return_value = MagicMock(choices=[choice])
        return client

    return _make


@pytest.fixture
def make_test_client(snarkify_config):
    """Factory for Flask test clients wired to a given completion client."""
    def _make(completion_client, config=None):
        app = _snarkify_module.create_local_app(config or snarkify_config, completion_client)
        app.testing = True
        return app.test_client()

    return _make


# ============================================================================
# Sample pages
# ============================================================================

@pytest.fixture
def sample_story_html():
    """A news story page linking to a couple of outside sources."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Local Man Buys Ninth Air Fryer | Daily Example</title>
        <style>body { color: red; }</style>
        <script>window.tracking = "everything";</script>
    </head>
    <body>
        <article>
            <h1>Local Man Buys Ninth Air Fryer</h1>
            <p>Sources say he has no regrets.</p>
            <a href="https://www.facebook.com/share?u=story">Share</a>
            <a href="https://research.example.org/air-fryers">Study</a>
            <a href="/about">About us</a>
        </article>
    </body>
    </html>
    """


@pytest.fixture
def sample_link_html():
    """A linked page with og metadata."""
    return """
    <html>
    <head>
        <title>Air Fryer Study - Example Research</title>
        <meta property="og:title" content="Air Fryers Considered Harmful">
        <meta property="og:description" content="A longitudinal study of countertop clutter.">
        <meta name="description" content="Plain description">
    </head>
    <body><p>Findings inside.</p></body>
    </html>
    """
