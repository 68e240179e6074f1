"""
Scryfall API service for looking up card records with local caching.

This module is the card lookup collaborator of the deck engine: it searches
cards by name, resolves exact printings by set code and collector number,
and re-hydrates cards by id. Every payload is validated into a Card before it
reaches the engine. Responses are cached on the local filesystem to minimize API calls.
"""

import json
import time
import logging
import hashlib
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .models import Card, CardDataError


class ScryfallAPIError(Exception):
    """Raised when Scryfall API calls fail."""
    pass


@dataclass
class SearchPage:
    """One page of card search results."""
    cards: List[Card] = field(default_factory=list)
    next_page: Optional[str] = None
    total_cards: int = 0

    @property
    def has_more(self) -> bool:
        return self.next_page is not None


class ScryfallService:
    """Service for interacting with Scryfall API with local caching."""

    BASE_URL = "https://api.scryfall.com"
    CACHE_VERSION = "2.0"

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        cache_duration_days: int = 30,
        max_retries: int = 5,
        timeout_seconds: int = 15,
        use_cache: bool = True,
    ):
        """
        Initialize Scryfall service with caching.

        Args:
            cache_dir: Directory for cache files. If None, uses default.
            cache_duration_days: How long to keep cached data (default: 30 days)
            max_retries: Maximum number of retries for failed requests
            timeout_seconds: Per-request timeout
            use_cache: Whether single-card lookups use the file cache
        """
        self.logger = logging.getLogger(__name__)

        if cache_dir is None:
            cache_dir = Path.home() / '.mtg_deck_engine' / 'scryfall_cache'

        self.cache_dir = Path(cache_dir)
        self.use_cache = use_cache
        if self.use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

        self.cache_duration_seconds = cache_duration_days * 24 * 60 * 60
        self.timeout_seconds = timeout_seconds

        # Scryfall asks for 50-100ms between requests
        self.last_request_time = 0.0
        self.min_request_interval = 0.1

        # Exponential backoff settings
        self.base_delay = 1.0
        self.max_delay = 60.0
        self.backoff_factor = 2.0
        self.max_retries = max_retries

        # Session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': 'MTG-Deck-Engine/1.0.0',
            'Accept': 'application/json',
        })

        self.logger.debug(f"Scryfall service initialized with cache dir: {self.cache_dir}")

    def search_cards(self, term: str, page_url: Optional[str] = None) -> SearchPage:
        """
        Search cards whose name starts with a term.

        Args:
            term: Search term typed by the user
            page_url: The next_page URL of a previous result to load more results

        Returns:
            SearchPage with validated cards; empty when nothing matches

        Raises:
            ScryfallAPIError: If the API cannot be reached or fails
        """
        if page_url:
            url, params = page_url, None
        else:
            term = term.strip()
            if not term:
                return SearchPage()
            url = f"{self.BASE_URL}/cards/search"
            params = {
                'q': f"name:{term}*",
                'unique': 'cards',
                'order': 'name',
            }

        data = self._request_with_retry(url, params, description=f"search '{term}'")
        if not data:
            return SearchPage()

        cards = []
        for raw_card in data.get('data', []):
            try:
                cards.append(Card.from_scryfall_data(raw_card))
            except CardDataError as e:
                self.logger.warning(f"Skipping malformed search result: {e}")

        return SearchPage(
            cards=cards,
            next_page=data.get('next_page') if data.get('has_more') else None,
            total_cards=int(data.get('total_cards', len(cards))),
        )

    def get_card_data(self, card_name: str) -> Optional[Card]:
        """
        Get a card by (fuzzy) name from cache or Scryfall API.

        Args:
            card_name: Name of the card to look up

        Returns:
            Card if found, None otherwise
        """
        normalized_name = self._normalize_card_name(card_name)
        return self._lookup(
            cache_key=f"name:{normalized_name}",
            url=f"{self.BASE_URL}/cards/named",
            params={'fuzzy': normalized_name},
            description=card_name,
        )

    def get_card_by_id(self, card_id: str) -> Optional[Card]:
        """Get a card by its Scryfall id."""
        return self._lookup(
            cache_key=f"id:{card_id}",
            url=f"{self.BASE_URL}/cards/{quote(card_id)}",
            params=None,
            description=card_id,
        )

    def get_card_by_code(self, set_code: str, collector_number: str) -> Optional[Card]:
        """
        Get an exact printing by set code and collector number.

        Args:
            set_code: Set code, e.g. 'DOM'
            collector_number: Collector number within the set, e.g. '168'

        Returns:
            Card if found, None otherwise
        """
        set_code = set_code.strip().lower()
        collector_number = str(collector_number).strip()
        return self._lookup(
            cache_key=f"code:{set_code}:{collector_number}",
            url=f"{self.BASE_URL}/cards/{quote(set_code)}/{quote(collector_number)}",
            params=None,
            description=f"{set_code.upper()} #{collector_number}",
        )

    def _lookup(self, cache_key: str, url: str, params: Optional[Dict[str, str]], description: str) -> Optional[Card]:
        """Resolve a single card through the cache, then the API."""
        if self.use_cache:
            cached_data = self._get_from_cache(cache_key)
            if cached_data:
                self.logger.debug(f"Cache hit for card: {description}")
                return Card.from_scryfall_data(cached_data)

        self.logger.debug(f"Cache miss for card: {description}, fetching from Scryfall")
        api_data = self._request_with_retry(url, params, description=description)
        if not api_data:
            return None

        card = Card.from_scryfall_data(api_data)
        if self.use_cache:
            self._save_to_cache(cache_key, api_data)
        return card

    def _request_with_retry(self, url: str, params: Optional[Dict[str, str]], description: str) -> Optional[Dict[str, Any]]:
        """
        Perform a GET request with exponential backoff retry logic.

        Returns:
            Parsed JSON body, or None when Scryfall answers 404

        Raises:
            ScryfallAPIError: If every attempt fails
        """
        for attempt in range(self.max_retries + 1):
            try:
                self._rate_limit_with_jitter()
                return self._request_json(url, params)

            except ScryfallAPIError as e:
                if attempt < self.max_retries:
                    delay = self._calculate_backoff_delay(attempt)
                    self.logger.warning(f"API error for {description} (attempt {attempt + 1}): {e}. Retrying in {delay:.1f}s")
                    time.sleep(delay)
                else:
                    self.logger.error(f"Failed to fetch {description} after {self.max_retries + 1} attempts: {e}")
                    raise

        return None

    def _request_json(self, url: str, params: Optional[Dict[str, str]]) -> Optional[Dict[str, Any]]:
        """Fetch a Scryfall endpoint without retry logic."""
        try:
            self.logger.debug(f"Fetching from Scryfall: {url} {params or ''}")
            response = self.session.get(url, params=params, timeout=self.timeout_seconds)

            if response.status_code == 429:
                retry_after = int(response.headers.get('Retry-After', 1))
                raise ScryfallAPIError(f"Rate limited, retry after {retry_after}s")

            if response.status_code == 200:
                return response.json()
            elif response.status_code == 404:
                self.logger.debug(f"Not found on Scryfall: {url}")
                return None
            elif response.status_code >= 500:
                raise ScryfallAPIError(f"Server error {response.status_code}: {response.text}")
            else:
                raise ScryfallAPIError(f"API request failed with status {response.status_code}: {response.text}")

        except requests.Timeout:
            raise ScryfallAPIError("Request timeout")
        except requests.ConnectionError as e:
            raise ScryfallAPIError(f"Connection error: {e}")
        except requests.RequestException as e:
            raise ScryfallAPIError(f"Network error: {e}")
        except json.JSONDecodeError as e:
            raise ScryfallAPIError(f"Invalid JSON response: {e}")

    def _rate_limit_with_jitter(self):
        """Apply rate limiting with jitter to avoid thundering herd."""
        current_time = time.time()
        time_since_last = current_time - self.last_request_time

        if time_since_last < self.min_request_interval:
            sleep_time = self.min_request_interval - time_since_last
            # Add small random jitter (±20%)
            jitter = sleep_time * 0.2 * (random.random() - 0.5)
            sleep_time += jitter
            time.sleep(max(0, sleep_time))

        self.last_request_time = time.time()

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        delay = self.base_delay * (self.backoff_factor ** attempt)
        delay = min(delay, self.max_delay)

        # Add jitter (±25% of delay)
        jitter = delay * 0.25 * (random.random() - 0.5)
        delay += jitter

        return max(0.1, delay)

    def _normalize_card_name(self, card_name: str) -> str:
        """Normalize card name for consistent API queries and caching."""
        normalized = ' '.join(card_name.strip().lower().split())

        # Handle double-faced cards - use only the front face
        if '//' in normalized:
            normalized = normalized.split('//')[0].strip()

        return normalized

    def _get_cache_path(self, cache_key: str) -> Path:
        """Get cache file path for a lookup key."""
        key_hash = hashlib.md5(cache_key.encode('utf-8')).hexdigest()
        safe_name = "".join(c for c in cache_key if c.isalnum() or c in (' ', '-', '_')).strip()
        safe_name = safe_name.replace(' ', '_')[:50]

        return self.cache_dir / f"{safe_name}_{key_hash}.json"

    def _get_from_cache(self, cache_key: str) -> Optional[Dict[str, Any]]:
        """Get a raw card payload from cache if available and not expired."""
        cache_path = self._get_cache_path(cache_key)

        if not cache_path.exists():
            return None

        try:
            cache_age = time.time() - cache_path.stat().st_mtime
            if cache_age > self.cache_duration_seconds:
                self.logger.debug(f"Cache expired for {cache_key}, age: {cache_age/86400:.1f} days")
                cache_path.unlink()
                return None

            with open(cache_path, 'r', encoding='utf-8') as f:
                cache_data = json.load(f)

            if cache_data.get('version') != self.CACHE_VERSION:
                self.logger.debug(f"Cache version mismatch for {cache_key}")
                cache_path.unlink()
                return None

            return cache_data['data']

        except (json.JSONDecodeError, KeyError, OSError) as e:
            self.logger.warning(f"Failed to load cache for {cache_key}: {e}")
            try:
                cache_path.unlink()
            except OSError:
                pass
            return None

    def _save_to_cache(self, cache_key: str, api_data: Dict[str, Any]) -> None:
        """Save a raw card payload to cache."""
        cache_path = self._get_cache_path(cache_key)

        try:
            cache_data = {
                'version': self.CACHE_VERSION,
                'timestamp': time.time(),
                'key': cache_key,
                'data': api_data,
            }

            with open(cache_path, 'w', encoding='utf-8') as f:
                json.dump(cache_data, f, indent=2, ensure_ascii=False)

            self.logger.debug(f"Cached data for: {cache_key}")

        except OSError as e:
            self.logger.warning(f"Failed to save cache for {cache_key}: {e}")

    def clear_cache(self) -> None:
        """Clear all cached data."""
        try:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()
            self.logger.info("Cache cleared successfully")
        except OSError as e:
            self.logger.error(f"Failed to clear cache: {e}")

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        cache_files = list(self.cache_dir.glob("*.json"))
        total_size = sum(f.stat().st_size for f in cache_files)

        return {
            'cache_dir': str(self.cache_dir),
            'total_cached_cards': len(cache_files),
            'total_size_bytes': total_size,
            'total_size_mb': total_size / (1024 * 1024),
        }
