"""Per-site SEO metadata."""

from __future__ import annotations

import logging

from news_publisher.integrations.base import SeoRewriter
from news_publisher.models import ArticleResult, Site, SiteArticle

logger = logging.getLogger(__name__)


def generate_seo_per_site(
    rewriter: SeoRewriter,
    article: ArticleResult,
    sites: list[Site],
) -> list[SiteArticle]:
    """Rewrite metadata for every site; titles already chosen are passed on to keep them distinct."""

    packages: list[SiteArticle] = []
    for site in sites:
        meta = rewriter.rewrite(
            site_name=site.name,
            headline=article.headline,
            content=article.cleaned_html,
            category=article.category,
            sibling_titles=[package.metatitle for package in packages],
        )
        if any(package.metatitle == meta.metatitle for package in packages):
            logger.warning(
                "SEO title repeats a sibling site's title (site=%s title=%r).",
                site.slug,
                meta.metatitle,
            )
        category = site.category_for(article.category)
        packages.append(
            SiteArticle(
                site=site,
                metatitle=meta.metatitle,
                metadescription=meta.metadescription,
                keyword=meta.keyword,
                category_id=category.id,
                category_color=category.color,
            ),
        )
    return packages
