"""
Static course catalog used to enrich cart items with category metadata.
"""
from typing import Dict, Optional

from course_shop.models import CategoryMetadata

CATALOG: Dict[str, CategoryMetadata] = {
    "python-debutant": CategoryMetadata(
        name="Développement", color_token="#3498db", icon="🐍",
        level="debutant", level_label="Débutant", rating="4.8",
    ),
    "ux-ui-design": CategoryMetadata(
        name="Design", color_token="#9b59b6", icon="🎨",
        level="intermediaire", level_label="Intermédiaire", rating="4.7",
    ),
    "javascript-moderne": CategoryMetadata(
        name="Développement", color_token="#f39c12", icon="⚡",
        level="intermediaire", level_label="Intermédiaire", rating="4.6",
    ),
    "agile-scrum": CategoryMetadata(
        name="Gestion de projet", color_token="#2ecc71", icon="🔄",
        level="debutant", level_label="Débutant", rating="4.5",
    ),
    "intelligence-artificielle": CategoryMetadata(
        name="Data & IA", color_token="#e74c3c", icon="🤖",
        level="avance", level_label="Avancé", rating="4.9",
    ),
    "react-js": CategoryMetadata(
        name="Développement", color_token="#1abc9c", icon="⚛️",
        level="avance", level_label="Avancé", rating="4.7",
    ),
}

# Used when neither the item nor the catalog knows the product
FALLBACK_METADATA = CategoryMetadata(
    name="Formation", color_token="", icon="📚",
    level="debutant", level_label="Débutant", rating="4.5",
)


def lookup(product_id: str, catalog: Optional[Dict[str, CategoryMetadata]] = None) -> Optional[CategoryMetadata]:
    """Return catalog metadata for a product, or None if unknown"""
    source = CATALOG if catalog is None else catalog
    return source.get(product_id)
