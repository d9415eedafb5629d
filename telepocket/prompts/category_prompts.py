"""
Category scoring prompts

Each built-in category has its own prompt returning a single integer 0-100.
Templates use the same {content} / {urls} placeholders as user tag prompts.
"""

TODO_PROMPT = """You are a task detection AI. Analyze the content and score how likely it represents a TODO/task/action item.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- Task verbs (need, must, should, remind, fix, implement): +40
- Temporal indicators (tomorrow, deadline, by date): +30
- Urgency markers (important, urgent, ASAP): +20
- Checkbox format or action list: +10

Return ONLY an integer 0-100. No explanation."""

IDEA_PROMPT = """You are an idea detection AI. Analyze the content and score how likely it represents a creative IDEA/concept/brainstorm.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- Explicit idea markers (idea:, what if, concept): +40
- Creative/speculative language (could build, imagine, new approach): +30
- Innovation terms (novel, creative, unique): +20
- Hypothetical scenarios (if we, suppose, consider): +10

Return ONLY an integer 0-100. No explanation."""

BLOG_PROMPT = """You are a blog/article detection AI. Analyze the content and score how likely it contains blog posts or written articles.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- Known blog platforms (medium.com, dev.to, substack.com): +50
- URL path indicators (/blog/, /article/, /post/): +30
- Reading material mentions (article, blog post, wrote about): +15
- Content structure hints (long-form, tutorial): +5

Return ONLY an integer 0-100. No explanation."""

YOUTUBE_PROMPT = """You are a video content detection AI. Analyze the content and score how likely it contains video/YouTube content.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- YouTube URL (youtube.com, youtu.be): +60
- Other video platforms (vimeo, twitch, loom): +50
- Video keywords (video, watch, tutorial, talk): +30
- Streaming/recording mentions (webinar, conference, recorded): +10

Return ONLY an integer 0-100. No explanation."""

REFERENCE_PROMPT = """You are a reference/documentation detection AI. Analyze the content and score how likely it contains reference material or documentation.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- Official docs URLs (docs.*, api.*, developer.*): +50
- Documentation mentions (docs, API reference, manual): +30
- Knowledge bases (stackoverflow, wiki, MDN): +15
- Learning resources (guide, tutorial, how-to): +5

Return ONLY an integer 0-100. No explanation."""

JAPANESE_PROMPT = """You are a Japanese language study material detection AI. Analyze the content and score how likely it contains Japanese learning content.

CONTENT: "{content}"
URLS: {urls}

Score 0-100 based on:
- Contains hiragana or katakana: +50 (if 3+ chars: +60)
- Japanese learning site URLs (jisho.org, bunpro.jp, wanikani.com): +50
- Language keywords (Japanese, JLPT, kanji, grammar): +30
- Romanized Japanese in educational context: +20
- Learning context (study, vocabulary, syntax): +10

Special rules:
- If hiragana or katakana present: minimum score 85
- If 3+ Japanese kana/kanji characters: minimum score 95
- Mixed Japanese + English explanation: score 90-95

Return ONLY an integer 0-100. No explanation."""

CATEGORY_PROMPTS = {
    "todo": TODO_PROMPT,
    "idea": IDEA_PROMPT,
    "blog": BLOG_PROMPT,
    "youtube": YOUTUBE_PROMPT,
    "reference": REFERENCE_PROMPT,
    "japanese": JAPANESE_PROMPT,
}

RELEVANCE_PROMPT = """You are analyzing a note for relevance to a user query.

User Query: "{query}"

Note Content:
\"\"\"
{content}
\"\"\"

Score this note's relevance to the query on a scale of 0-100:
- 0-20: Completely irrelevant
- 21-40: Tangentially related
- 41-60: Somewhat relevant
- 61-80: Quite relevant
- 81-100: Highly relevant

Return ONLY an integer score (0-100), nothing else."""
