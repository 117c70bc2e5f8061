"""
Snarkifier Cloud Function

Takes an uploaded file or a URL and returns a snarky roast of it, written by
an OpenAI chat model with a fixed persona.

Responsibilities:
- Validate that exactly one of file / URL was sent
- Fetch and sanitize the page for URL requests
- Harvest a little context from the page's outbound links
- Turn uploads into prompt content by MIME type
- Call the completion API and return the roast text
- Delete the uploaded temp file on every path

Does NOT:
- Retry upstream calls
- Extract text from PDF or Word documents (placeholder text is sent instead)
- Serve the UI
"""

import functions_framework
import requests
from dotenv import load_dotenv
from flask import Flask, request as flask_request
from openai import OpenAI
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import urljoin, urlparse
import base64
import json
import os
import sys
import tempfile
import traceback

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.html_utils import MAX_PAGE_TEXT_LENGTH, strip_html, extract_anchor_hrefs, extract_link_metadata
from shared.prompt_utils import PromptParts, build_messages, load_system_prompt

load_dotenv()

# Configuration defaults
DEFAULT_MODEL = 'gpt-4o-mini'
DEFAULT_PORT = 3000
USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'

# Context harvesting limits
EXCLUDED_HOSTS = {'facebook.com', 'twitter.com', 'x.com', 't.co'}
MAX_CANDIDATE_LINKS = 5
MAX_FETCHED_LINKS = 2
NOTE_EXCERPT_LENGTH = 240

# Upload handling
MAX_TEXT_UPLOAD_BYTES = 256_000
DEFAULT_UPLOAD_MIME = 'application/octet-stream'
WORD_MIME_TYPES = {
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
}
PDF_PLACEHOLDER = '[PDF provided. Text extraction not configured server-side; consider enabling parser.]'
WORD_PLACEHOLDER = '[Word document provided. Text extraction not configured server-side; consider enabling parser.]'
UNSUPPORTED_PLACEHOLDER = '[Unsupported or large file type provided.]'

# Completion settings
TEMPERATURE = 0.9
MAX_OUTPUT_TOKENS = 400

# Response messages
NO_RESULT_TEXT = '(no result)'
INVALID_INPUT_MESSAGE = 'Provide either a file or a URL, but not both.'
PROCESSING_ERROR_MESSAGE = 'Failed to process request.'

CORS_PREFLIGHT_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'POST',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Max-Age': '3600'
}
RESPONSE_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Content-Type': 'application/json'
}


@dataclass(frozen=True)
class SnarkifierConfig:
    """Process-wide settings, loaded once at startup."""
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    port: int = DEFAULT_PORT
    system_prompt_path: Optional[str] = None
    upload_dir: Optional[str] = None
    fetch_timeout: Optional[float] = None


def load_config(environ=None) -> SnarkifierConfig:
    """
    Build the configuration from environment variables.

    Recognized variables:
        PORT, OPENAI_API_KEY, OPENAI_MODEL, SYSTEM_PROMPT_PATH,
        UPLOAD_DIR, FETCH_TIMEOUT_SECONDS
    """
    env = os.environ if environ is None else environ
    fetch_timeout = env.get('FETCH_TIMEOUT_SECONDS')

    return SnarkifierConfig(
        openai_api_key=env.get('OPENAI_API_KEY') or None,
        openai_model=env.get('OPENAI_MODEL') or DEFAULT_MODEL,
        port=int(env.get('PORT') or DEFAULT_PORT),
        system_prompt_path=(
            env.get('SYSTEM_PROMPT_PATH') or
            os.path.join(os.getcwd(), 'prompts', 'system.txt')
        ),
        upload_dir=env.get('UPLOAD_DIR') or None,
        fetch_timeout=float(fetch_timeout) if fetch_timeout else None,
    )


CONFIG = load_config()

# OpenAI client cache (one client per API key)
_openai_client_cache = {'api_key': None, 'client': None}


class InvalidInput(ValueError):
    """Both or neither of file and URL were provided."""


class UpstreamError(RuntimeError):
    """Primary content fetch or completion call failed."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


@dataclass(frozen=True)
class FetchedPage:
    html: str
    text: str
    final_url: str


@dataclass(frozen=True)
class HarvestedNote:
    source_link: str
    title_or_fallback: str
    description_or_excerpt: str

    @property
    def text(self) -> str:
        return f"{self.title_or_fallback} — {self.description_or_excerpt}"


@dataclass(frozen=True)
class SkippedLink:
    link: str
    reason: str


HarvestResult = Union[HarvestedNote, SkippedLink]


def fetch_page(url: str, timeout: Optional[float] = None) -> FetchedPage:
    """
    Fetch a page and sanitize it.

    Redirects are followed and HTTP error statuses are not treated as
    failures, so a 404 page is returned like any other. Bodies without a
    charset in the Content-Type header are decoded as UTF-8. Network errors
    propagate as requests exceptions.
    """
    headers = {
        'User-Agent': USER_AGENT,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.5',
    }

    response = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)

    # requests falls back to ISO-8859-1 for text/* without a charset
    if 'charset' not in response.headers.get('Content-Type', '').lower():
        response.encoding = 'utf-8'
    html = response.text

    return FetchedPage(
        html=html,
        text=strip_html(html)[:MAX_PAGE_TEXT_LENGTH],
        final_url=response.url or url,
    )


def normalize_host(hostname: str) -> str:
    """Lowercase a hostname and drop a leading 'www.'."""
    host = (hostname or '').lower()
    return host[4:] if host.startswith('www.') else host


def select_candidate_links(html: str, base_url: str, limit: int = MAX_CANDIDATE_LINKS) -> List[str]:
    """
    Pick outbound links worth fetching for context.

    Scans the first hrefs of the page, resolves them against `base_url`,
    keeps http(s) links outside EXCLUDED_HOSTS and dedupes them by
    (host, path). Stops at `limit` links, in document order.
    """
    candidates = []
    seen = set()

    for href in extract_anchor_hrefs(html):
        try:
            link = urljoin(base_url, href)
            parsed = urlparse(link)
            hostname = parsed.hostname
        except ValueError:
            continue

        if parsed.scheme not in ('http', 'https') or not hostname:
            continue

        host = normalize_host(hostname)
        if host in EXCLUDED_HOSTS:
            continue

        key = (host, parsed.path or '/')
        if key in seen:
            continue

        seen.add(key)
        candidates.append(link)
        if len(candidates) >= limit:
            break

    return candidates


def harvest_link(link: str, timeout: Optional[float] = None) -> HarvestResult:
    """Fetch one link and summarize it as a note, or report why it was skipped."""
    try:
        page = fetch_page(link, timeout=timeout)
        metadata = extract_link_metadata(page.html)
    except Exception as e:
        return SkippedLink(link=link, reason=str(e) or type(e).__name__)

    title = metadata['title']
    description = metadata['description']

    if title or description:
        return HarvestedNote(link, title or link, description)

    return HarvestedNote(link, link, page.text[:NOTE_EXCERPT_LENGTH])


def harvest_context(html: str, base_url: str, timeout: Optional[float] = None) -> List[HarvestResult]:
    """
    Harvest context notes from the first outbound links of a page.

    Links are fetched one after another so notes keep document order. Each
    link produces exactly one result; a failed link never stops the next.
    """
    results = []

    for link in select_candidate_links(html, base_url)[:MAX_FETCHED_LINKS]:
        result = harvest_link(link, timeout=timeout)
        if isinstance(result, SkippedLink):
            print(f"Skipping context link {result.link}: {result.reason}")
        results.append(result)

    return results


def collect_context_notes(html: str, base_url: str, timeout: Optional[float] = None) -> Optional[str]:
    """Harvested notes joined by newlines, or None when there are none."""
    try:
        results = harvest_context(html, base_url, timeout=timeout)
    except Exception as e:
        print(f"Context harvest failed: {e}")
        return None

    notes = [result.text for result in results if isinstance(result, HarvestedNote)]
    return '\n'.join(notes) if notes else None


def save_upload(upload, upload_dir: Optional[str] = None) -> str:
    """Write a multipart upload to a temp file and return its path."""
    if upload_dir:
        os.makedirs(upload_dir, exist_ok=True)

    temp_file = tempfile.NamedTemporaryFile(delete=False, prefix='upload-', dir=upload_dir)
    try:
        upload.save(temp_file)
    except Exception:
        temp_file.close()
        safe_unlink(temp_file.name)
        raise
    temp_file.close()

    return temp_file.name


def safe_unlink(path: Optional[str]) -> None:
    """Delete a file if it exists; errors are ignored."""
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass


def extract_upload_content(path: str, mimetype: Optional[str]) -> PromptParts:
    """
    Turn an uploaded file into prompt content based on its declared MIME type.

    Images become a data: URI image part. PDF and Word files get a fixed
    placeholder since extraction is not implemented. Anything else is read
    as UTF-8 text if it is small enough.
    """
    mime = (mimetype or DEFAULT_UPLOAD_MIME).lower()

    with open(path, 'rb') as f:
        data = f.read()

    if mime.startswith('image/'):
        encoded = base64.b64encode(data).decode('ascii')
        return PromptParts(image=f"data:{mime};base64,{encoded}")

    if mime == 'application/pdf':
        return PromptParts(text=PDF_PLACEHOLDER)

    if mime in WORD_MIME_TYPES:
        return PromptParts(text=WORD_PLACEHOLDER)

    if len(data) < MAX_TEXT_UPLOAD_BYTES:
        return PromptParts(text=data.decode('utf-8', errors='replace'))

    return PromptParts(text=UNSUPPORTED_PLACEHOLDER)


def validate_input(has_file: bool, url: str) -> None:
    """Raise InvalidInput unless exactly one of file / URL is present."""
    if has_file == bool(url):
        raise InvalidInput(INVALID_INPUT_MESSAGE)


def gather_materials(url: str, upload_path: Optional[str], mimetype: Optional[str],
                     config: SnarkifierConfig) -> PromptParts:
    """Collect prompt content for a URL or an uploaded file."""
    if not url:
        return extract_upload_content(upload_path, mimetype)

    try:
        page = fetch_page(url, timeout=config.fetch_timeout)
    except requests.exceptions.RequestException as e:
        raise UpstreamError('fetch', f"Failed to fetch {url}: {e}") from e

    notes = collect_context_notes(page.html, page.final_url, timeout=config.fetch_timeout)

    return PromptParts(url=url, text=page.text, notes=notes)


def get_openai_client(config: SnarkifierConfig) -> OpenAI:
    """Return the cached OpenAI client for the configured API key."""
    if (_openai_client_cache['client'] is None or
            _openai_client_cache['api_key'] != config.openai_api_key):
        _openai_client_cache['client'] = OpenAI(api_key=config.openai_api_key)
        _openai_client_cache['api_key'] = config.openai_api_key

    return _openai_client_cache['client']


def first_choice_text(completion) -> str:
    """Stripped content of the first choice, '' when there is none."""
    choices = getattr(completion, 'choices', None) or []
    if not choices:
        return ''

    message = getattr(choices[0], 'message', None)
    content = getattr(message, 'content', None) if message is not None else None

    return (content or '').strip()


def request_roast(client, model: str, messages: list) -> str:
    """Call the completion API once. Any failure becomes UpstreamError."""
    try:
        completion = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=TEMPERATURE,
            max_tokens=MAX_OUTPUT_TOKENS
        )
    except Exception as e:
        raise UpstreamError('completion', f"Completion request failed: {e}") from e

    return first_choice_text(completion)


def snarkify_content(url: str, upload_path: Optional[str], mimetype: Optional[str],
                     config: SnarkifierConfig, client=None) -> str:
    """Run extract, compose and invoke for one request; returns the roast text."""
    parts = gather_materials(url, upload_path, mimetype, config)
    messages = build_messages(load_system_prompt(config.system_prompt_path), parts)

    if client is None:
        try:
            client = get_openai_client(config)
        except Exception as e:
            raise UpstreamError('completion', f"Could not create OpenAI client: {e}") from e

    return request_roast(client, config.openai_model, messages)


def handle_snarkify(request, config: SnarkifierConfig, client=None):
    """
    Handle one roast request.

    Expected multipart form input, exactly one of:
        file: binary upload
        url:  page to roast

    Returns a (body, status, headers) tuple:
        200 {"text": "..."}
        400 {"error": "..."} when both or neither input was sent
        500 {"error": "Failed to process request."} on any processing failure
    """
    # Handle CORS
    if request.method == 'OPTIONS':
        return ('', 204, CORS_PREFLIGHT_HEADERS)

    headers = dict(RESPONSE_HEADERS)

    if request.method != 'POST':
        return (json.dumps({'error': 'Method not allowed'}), 405, headers)

    upload = request.files.get('file')
    has_file = upload is not None and bool(upload.filename)
    url = (request.form.get('url') or '').strip()

    try:
        validate_input(has_file, url)
    except InvalidInput as e:
        return (json.dumps({'error': str(e)}), 400, headers)

    upload_path = None
    try:
        if has_file:
            upload_path = save_upload(upload, config.upload_dir)

        text = snarkify_content(
            url,
            upload_path,
            upload.mimetype if has_file else None,
            config,
            client
        )
        return (json.dumps({'text': text or NO_RESULT_TEXT}), 200, headers)

    except Exception as e:
        stage = getattr(e, 'stage', 'processing')
        print(f"Snarkify failed at stage '{stage}': {e}")
        print(traceback.format_exc())
        return (json.dumps({'error': PROCESSING_ERROR_MESSAGE}), 500, headers)

    finally:
        safe_unlink(upload_path)


@functions_framework.http
def snarkify(request):
    """Main Cloud Function entry point."""
    return handle_snarkify(request, CONFIG)


def create_local_app(config: Optional[SnarkifierConfig] = None, client=None) -> Flask:
    """Flask app serving the handler at /api/snarkify for local runs."""
    config = config or CONFIG
    app = Flask(__name__)

    @app.route('/api/snarkify', methods=['POST', 'OPTIONS'])
    def api_snarkify():
        return handle_snarkify(flask_request, config, client)

    return app


if __name__ == '__main__':
    local_app = create_local_app()
    print(f"THE SNARKIFIER running on http://localhost:{CONFIG.port}")
    local_app.run(host='0.0.0.0', port=CONFIG.port)
