"""
Category classifier - deterministic fast path run before any model call

Detects categories from URL patterns, script ranges and explicit markers.
A hit can short-circuit a label without spending a rate limiter token, and
doubles as the heuristic when every provider fails. The numeric scores are
tuning data and can be overridden per instance.
"""
import re
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class PatternDetector:
    """
    Pattern-based category detector

    Sources of evidence, strongest first:
    1. Video / blog / documentation / Japanese-learning URLs
    2. Japanese script (hiragana, katakana, kanji)
    3. Explicit "todo:" / "idea:" markers in the text
    """

    YOUTUBE_DOMAINS = ["youtube.com", "youtu.be"]

    VIDEO_PLATFORM_DOMAINS = ["vimeo.com", "twitch.tv", "loom.com"]

    JAPANESE_LEARNING_DOMAINS = [
        "jisho.org", "bunpro.jp", "wanikani.com", "jpdb.io",
        "tangorin.com", "guidetojapanese.org", "nhk.or.jp/lesson"
    ]

    BLOG_PLATFORM_DOMAINS = [
        "medium.com", "dev.to", "hashnode.dev", "substack.com", "ghost.io"
    ]

    BLOG_PATH_PATTERNS = ["/blog/", "/article/", "/post/", "/posts/"]

    DOCUMENTATION_PATTERNS = [
        "docs.", "api.", "developer.", "reference.",
        "readthedocs.io", "github.com/", "/docs/"
    ]

    TODO_MARKERS = ["todo:", "to do:", "to-do:", "[ ]", "remind me"]

    IDEA_MARKERS = ["idea:", "what if", "concept:"]

    HIRAGANA_REGEX = re.compile(r"[぀-ゟ]")
    KATAKANA_REGEX = re.compile(r"[゠-ヿ]")
    JAPANESE_CHAR_REGEX = re.compile(r"[぀-ゟ゠-ヿ一-鿿]")

    DEFAULT_SCORES = {
        "youtube_url": 100,
        "video_platform": 95,
        "japanese_site": 95,
        "blog_platform": 95,
        "blog_path": 85,
        "documentation": 90,
        "kana_many": 95,
        "kana_few": 85,
        "kanji_many": 75,
        "kanji_few": 65,
        "todo_marker": 85,
        "idea_marker": 85,
    }

    # minimum number of Japanese characters for the "many" scores
    JAPANESE_MIN_CHARS = 3

    def __init__(self, scores: Optional[Dict[str, int]] = None):
        """
        Args:
            scores: overrides for DEFAULT_SCORES entries
        """
        self.scores = dict(self.DEFAULT_SCORES)
        if scores:
            unknown = set(scores) - set(self.DEFAULT_SCORES)
            if unknown:
                raise ValueError(f"Unknown pattern score keys: {sorted(unknown)}")
            self.scores.update(scores)

        self._todo_pattern = self._build_pattern(self.TODO_MARKERS)
        self._idea_pattern = self._build_pattern(self.IDEA_MARKERS)

        self._stats = Counter()

    def _build_pattern(self, keywords: List[str]) -> re.Pattern:
        """Compile a keyword list into one case-insensitive regex"""
        escaped = [re.escape(kw) for kw in keywords]
        return re.compile('|'.join(escaped), re.IGNORECASE)

    @staticmethod
    def _raise(scores: Dict[str, int], category: str, value: int):
        scores[category] = max(scores.get(category, 0), value)

    def detect(self, content: str, urls: Sequence[str] = ()) -> Dict[str, int]:
        """
        Detect categories from deterministic patterns

        Args:
            content: note text
            urls: URLs attached to the note

        Returns:
            Dict[str, int]: category -> score, only for categories with a hit
        """
        scores: Dict[str, int] = {}
        content = content or ""

        self._detect_japanese_script(content, scores)

        for url in urls:
            self._detect_url(url.lower(), scores)

        if self._todo_pattern.search(content):
            self._raise(scores, "todo", self.scores["todo_marker"])
        if self._idea_pattern.search(content):
            self._raise(scores, "idea", self.scores["idea_marker"])

        for category in scores:
            self._stats[category] += 1

        if scores:
            logger.debug(f"[FastPath] {scores}")
        return scores

    def _detect_japanese_script(self, content: str, scores: Dict[str, int]):
        char_count = len(self.JAPANESE_CHAR_REGEX.findall(content))
        if char_count == 0:
            return

        many = char_count >= self.JAPANESE_MIN_CHARS
        if self.HIRAGANA_REGEX.search(content) or self.KATAKANA_REGEX.search(content):
            value = self.scores["kana_many"] if many else self.scores["kana_few"]
        else:
            # kanji alone could be Chinese
            value = self.scores["kanji_many"] if many else self.scores["kanji_few"]
        self._raise(scores, "japanese", value)

    def _detect_url(self, url: str, scores: Dict[str, int]):
        if any(domain in url for domain in self.YOUTUBE_DOMAINS):
            self._raise(scores, "youtube", self.scores["youtube_url"])

        if any(domain in url for domain in self.VIDEO_PLATFORM_DOMAINS):
            self._raise(scores, "youtube", self.scores["video_platform"])

        if any(domain in url for domain in self.JAPANESE_LEARNING_DOMAINS):
            self._raise(scores, "japanese", self.scores["japanese_site"])

        if any(domain in url for domain in self.BLOG_PLATFORM_DOMAINS):
            self._raise(scores, "blog", self.scores["blog_platform"])

        if any(pattern in url for pattern in self.BLOG_PATH_PATTERNS):
            self._raise(scores, "blog", self.scores["blog_path"])

        if any(pattern in url for pattern in self.DOCUMENTATION_PATTERNS):
            self._raise(scores, "reference", self.scores["documentation"])

    def get_stats(self) -> Dict[str, int]:
        """Fast-path hits per category"""
        return dict(self._stats)
