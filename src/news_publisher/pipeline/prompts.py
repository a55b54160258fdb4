"""Built-in editor prompts, category table and image pivot catalogs.

Database-held editor configuration overrides any of these; empty values fall
back to the defaults below. Templates use ``{{name}}`` placeholders.
"""

from __future__ import annotations

import re
from typing import Any

from news_publisher.models import CategoryInfo, EditorConfig, EditorPrompts

DEFAULT_CATEGORY_MAP: dict[str, CategoryInfo] = {
    "Finance": CategoryInfo(id=7, color="#00AB76"),
    "Technology": CategoryInfo(id=6, color="#067BC2"),
    "Energy": CategoryInfo(id=5, color="#dc6a3f"),
    "Culture": CategoryInfo(id=1, color="#C2C6A2"),
    "Food & Health": CategoryInfo(id=4, color="#663300"),
}

ARTICLE_WRITING_SYSTEM = (
    "You are a wire-style financial journalist drafting concise, data-driven news "
    "stories for a retail-investor audience. Write clear, neutral English in a "
    "Reuters/MarketWatch house style."
)

ARTICLE_WRITING_USER = """<rss_title>{{rssTitle}}</rss_title>
<context_snippet>{{contentSnippet}}</context_snippet>
<google_search_content>{{googleSearchContent}}</google_search_content>
<publish_date>{{pubDate}}</publish_date>

Write a 420-550 word news article about the event above.

RULES
- Open with a one-sentence lede (at most 25 words) stating what happened and why it matters.
- At most two sentences per paragraph.
- Add a "Key Takeaways" list of at most three short bullets after the lede.
- Include at least one attributed direct quotation taken from the search content.
- Benchmark the move against peers or an index within the first 150 words.
- Cite sources with numbered <sup> footnotes and finish with an HTML "References" section.
- Neutral active voice; the verb of speech is "said".

FORMAT
- Wrap everything in <article> and put the headline in a single <h1>.
- Use <h2>/<h3> subheadings, <p> paragraphs, <blockquote> for quotes.
- After the article body add exactly these two lines:
<p><strong>Tags:</strong> keyword1, keyword2, keyword3</p>
<p><strong>Category:</strong> one of Technology, Energy, Food & Health, Finance, Culture</p>
"""

IMAGE_SELECTION_SYSTEM = "You are a senior photo editor for an online newsroom."

IMAGE_SELECTION_USER = """ROLE: You are a photo editor selecting the best reference image for article illustration.

TASK: Analyze the attached images ({{imageCount}} candidates) and select the SINGLE BEST one.

ARTICLE CONTEXT:
- Title: {{articleTitle}}
- Category: {{category}}
- Target Color: {{colorHint}}

SELECTION CRITERIA (in priority order):
1. Relevance to the article subject
2. Composition: clear subject, good lighting
3. Colour potential: the main subject can be highlighted in the target colour
4. Professional quality: sharp, no watermarks
5. Transformability: can be reimagined while staying recognizable

AVOID screenshots, charts, text overlays, blurry images and stock clichés.

OUTPUT: Return ONLY a JSON object with:
{
  "selectedIndex": 0,
  "reason": "Brief explanation (max 20 words)",
  "subjectDescription": "What the main subject is (max 15 words)",
  "colorTarget": "One specific NON-HUMAN physical object to colour, e.g. 'the oil derrick' (max 10 words)"
}
Use index 0 to {{imageCountMax}} for selectedIndex."""

IMAGE_EDIT_TEMPLATE = """Selective-Colour Editorial Photograph

CRITICAL RULE (apply this before everything else):
- Render the entire image in rich black and white
- Then apply colour {{hexColor}} to ONE element ONLY: {{colorTarget}}
- Every other element (background, sky, environment, walls, people, clothing, hair) stays black and white
- NEVER apply any colour to human faces, skin, or hair

Reference: the attached photo shows {{subjectDescription}}
Selected because: {{reason}}
Story: {{headline}}

Style:
- Ultra-realistic editorial news photography
- Shallow depth of field, cinematic rim lighting
- Subtle analog grain and natural imperfections

Composition:
- The coloured subject ({{colorTarget}}) is the clear focal point
- Professional news framing, 16:9 aspect ratio
- No text overlays, watermarks, or logos

Output: One single ultra-realistic editorial photograph ready for publication."""

COLOR_HINT_TEMPLATE = (
    "Brand accent colour for selective-colour treatment: {hex_color}. The colorTarget "
    "MUST be a specific, prominent NON-HUMAN physical object in the foreground (e.g. a "
    "stethoscope, a vehicle, a product, machinery, a building facade). Do NOT suggest "
    "backgrounds, skies, walls, environments, or any part of a human (skin, face, hair, "
    "clothing)."
)

DEFAULT_PROMPTS = EditorPrompts(
    article_writing_system=ARTICLE_WRITING_SYSTEM,
    article_writing_user=ARTICLE_WRITING_USER,
    image_selection_system=IMAGE_SELECTION_SYSTEM,
    image_selection_user=IMAGE_SELECTION_USER,
    image_edit_template=IMAGE_EDIT_TEMPLATE,
)

DEFAULT_PIVOT_CATALOGS: dict[str, Any] = {
    "composition_catalog": {
        "blueprints": [
            {
                "name": "Wide Establishing Shot",
                "usage": "Introduce a location or organization with visual authority.",
                "traits": "Full building or site, angled upward, signage visible.",
                "ai_guidance": "Include sky or ground for context; avoid clutter.",
            },
            {
                "name": "Foreground Subject, Background Context",
                "usage": "Highlight a key object within a larger context.",
                "traits": "Sharp foreground, blurred background that hints at context.",
                "ai_guidance": "Keep the subject tight but hint at its environment.",
            },
            {
                "name": "Rule-of-Thirds Product",
                "usage": "Balance thumbnails and article cards.",
                "traits": "Subject in one third of the frame with clean negative space.",
                "ai_guidance": "Use a clear background to contrast with the product.",
            },
            {
                "name": "Diagonal Leading Lines",
                "usage": "Guide the eye to the key visual point.",
                "traits": "Roads, pipes or conveyors lead toward the subject.",
                "ai_guidance": "Place the subject at the end of a strong line.",
            },
            {
                "name": "Macro Detail",
                "usage": "Suggest innovation, precision or fragility.",
                "traits": "Extreme close-up on a tool, material or component.",
                "ai_guidance": "Focus on fine textures; ignore background context.",
            },
        ],
    },
    "framing_catalog": [
        {
            "id": "eye-level-straight",
            "description": "Camera at eye level, parallel to the ground.",
            "use_case": "Press photos, statements",
        },
        {
            "id": "low-angle-up",
            "description": "Camera below the subject looking up; suggests power or scale.",
            "use_case": "Large buildings, machinery",
        },
        {
            "id": "high-angle-down",
            "description": "Camera above the subject; shows the broader scene.",
            "use_case": "Warehouses, crowds, crisis zones",
        },
        {
            "id": "overhead-drone",
            "description": "Bird's-eye view looking straight down.",
            "use_case": "Traffic, agriculture, construction",
        },
    ],
    "camera_catalog": [
        {"id": "sony-a7r-iv", "label": "Sony a7R IV", "note": "high-resolution photojournalism"},
        {"id": "canon-eos-r5", "label": "Canon EOS R5", "note": "fast-action editorial work"},
        {"id": "nikon-d850", "label": "Nikon D850", "note": "deep color range, editorial realism"},
    ],
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def fill_template(template: str, values: dict[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown placeholders are left as is."""

    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def color_hint(hex_color: str | None) -> str:
    return COLOR_HINT_TEMPLATE.format(hex_color=hex_color) if hex_color else ""


def resolve_prompts(config: EditorConfig) -> EditorPrompts:
    """Overlay configured prompts on the built-in defaults."""

    configured = config.prompts

    def pick(value: str | None, default: str | None) -> str:
        return (value or "").strip() or (default or "")

    return EditorPrompts(
        article_writing_system=pick(
            configured.article_writing_system,
            DEFAULT_PROMPTS.article_writing_system,
        ),
        article_writing_user=pick(
            configured.article_writing_user,
            DEFAULT_PROMPTS.article_writing_user,
        ),
        image_selection_system=pick(
            configured.image_selection_system,
            DEFAULT_PROMPTS.image_selection_system,
        ),
        image_selection_user=pick(
            configured.image_selection_user,
            DEFAULT_PROMPTS.image_selection_user,
        ),
        image_edit_template=pick(configured.image_edit_template, DEFAULT_PROMPTS.image_edit_template),
    )


def resolve_category_map(config: EditorConfig) -> dict[str, CategoryInfo]:
    return config.category_map or DEFAULT_CATEGORY_MAP


def resolve_pivot_catalogs(config: EditorConfig) -> dict[str, Any]:
    return config.pivot_catalogs if config.pivot_catalogs is not None else DEFAULT_PIVOT_CATALOGS


def format_pivot_catalogs(catalogs: dict[str, Any] | None) -> str:
    """Render pivot catalogs as a block appended to the image-selection system prompt."""

    if not catalogs:
        return ""

    parts: list[str] = []
    blueprints = (catalogs.get("composition_catalog") or {}).get("blueprints") or []
    if blueprints:
        lines = [
            f"- {item.get('name', '')}: {item.get('usage', '')} "
            f"Traits: {item.get('traits', '')} AI guidance: {item.get('ai_guidance', '')}"
            for item in blueprints
        ]
        parts.append(
            "COMPOSITION BLUEPRINTS (choose or blend for the editorial image):\n" + "\n".join(lines),
        )

    framings = catalogs.get("framing_catalog") or []
    if framings:
        lines = [
            f"- {item.get('id', '')}: {item.get('description', '')} "
            f"Use for: {item.get('use_case', '')}"
            for item in framings
        ]
        parts.append("FRAMING OPTIONS (camera angle/framing):\n" + "\n".join(lines))

    cameras = catalogs.get("camera_catalog") or []
    if cameras:
        lines = [f"- {item.get('label', '')}: {item.get('note', '')}" for item in cameras]
        parts.append("CAMERA / SENSOR STYLE (suggest visual fidelity):\n" + "\n".join(lines))

    if not parts:
        return ""
    return (
        "\n\nUse these pivots to guide composition, framing, and style when selecting the "
        "best image and when writing the image edit prompt:\n\n" + "\n\n".join(parts)
    )
