# scraper/urls.py
from typing import Optional

CATALOGUE_DIR = "catalogue"
PAGE_PREFIX = "page"
PARENT_DIR = "../"


def _root(base):
    return base.rstrip("/") + "/"


def resolve(base, reference, current_dir="", catalogue=CATALOGUE_DIR) -> Optional[str]:
    """
    Turn an href/src found on a listing or detail page into an absolute URL.

    The toscrape sites link with three flavours of relative path: links that
    already carry the catalogue directory ("catalogue/page-2.html"), bare page
    links emitted from inside the catalogue ("page-3.html") and parent-relative
    asset paths ("../../media/cache/x.jpg"). Anything else is relative to the
    directory of the page it was found on.

    Args:
        base (str): Site root, e.g. "https://books.toscrape.com/"
        reference (str | None): Raw attribute value from the page
        current_dir (str): Directory of the current page relative to base,
            e.g. "catalogue/" (see directory_of)
        catalogue (str | None): Catalogue directory inserted in front of bare
            page links. None disables the page rule (quotes site).

    Returns:
        str | None: Absolute URL, or None if reference is None

    Note:
        "../" is removed literally from the final string; this is not a
        general path normalisation.
    """
    if reference is None:
        return None

    root = _root(base)
    if reference.startswith(("http://", "https://")):
        url = reference
    elif catalogue and reference.startswith(catalogue):
        url = root + reference
    elif catalogue and reference.startswith(PAGE_PREFIX):
        url = f"{root}{catalogue}/{reference}"
    elif reference.startswith(PARENT_DIR):
        url = root + reference
    elif reference.startswith("/"):
        url = root + reference.lstrip("/")
    else:
        url = root + current_dir + reference
    return url.replace(PARENT_DIR, "")


def directory_of(page_url, base):
    """Directory part of page_url relative to base ("" at the site root)."""
    root = _root(base)
    if not page_url or not page_url.startswith(root):
        return ""
    rel = page_url[len(root):]
    if "/" not in rel:
        return ""
    return rel.rsplit("/", 1)[0] + "/"
