import asyncio
import logging
from decimal import Decimal

from .common.database import count_products, create_category, create_product, dispose_engine, init_db

_logger = logging.getLogger(__name__)

SAMPLE_CATEGORIES = [
    {"name": "Beurre de Karité Pur", "description": "Beurre de karité 100% naturel et non raffiné", "slug": "karite-pur"},
    {"name": "Produits Parfumés", "description": "Beurre de karité enrichi aux huiles essentielles", "slug": "karite-parfume"},
    {"name": "Gamme Bébé", "description": "Produits spécialement formulés pour les bébés", "slug": "karite-bebe"},
    {"name": "Soins Anti-Âge", "description": "Formules enrichies pour lutter contre le vieillissement", "slug": "karite-anti-age"},
]

# "category" indexes SAMPLE_CATEGORIES
SAMPLE_PRODUCTS = [
    {
        "name": "Beurre de Karité Bio Premium",
        "description": "Beurre de karité 100% naturel et biologique du Burkina Faso. Non raffiné, riche en vitamines A, E et F.",
        "price": "24.99", "original_price": "29.99", "stock": 50, "category": 0,
        "rating": "4.8", "review_count": 156, "is_featured": True,
    },
    {
        "name": "Beurre de Karité Parfumé Vanille",
        "description": "Beurre de karité enrichi aux extraits naturels de vanille bourbon.",
        "price": "22.99", "stock": 35, "category": 1,
        "rating": "4.6", "review_count": 89, "is_featured": True,
    },
    {
        "name": "Beurre de Karité Bébé Doux",
        "description": "Formule extra-douce pour les bébés. Hypoallergénique, sans parfum.",
        "price": "19.99", "original_price": "24.99", "stock": 0, "category": 2,
        "rating": "4.9", "review_count": 234, "is_featured": True,
    },
    {
        "name": "Beurre de Karité Anti-Âge",
        "description": "Enrichi en vitamine E et collagène naturel.",
        "price": "34.99", "stock": 25, "category": 3,
        "rating": "4.7", "review_count": 67, "is_featured": True,
    },
    {
        "name": "Karité Lavande Relaxant",
        "description": "Beurre de karité infusé à l'huile essentielle de lavande.",
        "price": "26.99", "stock": 42, "category": 1,
        "rating": "4.5", "review_count": 78, "is_featured": False,
    },
    {
        "name": "Karité Cacao Gourmand",
        "description": "Texture riche et parfum gourmand de cacao pour les peaux très sèches.",
        "price": "23.99", "stock": 38, "category": 1,
        "rating": "4.4", "review_count": 92, "is_featured": False,
    },
    {
        "name": "Karité Bébé Bio Certifié",
        "description": "Certification bio Ecocert. Formule ultra-pure pour les nourrissons.",
        "price": "28.99", "stock": 20, "category": 2,
        "rating": "4.8", "review_count": 145, "is_featured": False,
    },
    {
        "name": "Sérum Karité Régénérant",
        "description": "Concentré anti-âge au karité et acide hyaluronique.",
        "price": "42.99", "stock": 15, "category": 3,
        "rating": "4.6", "review_count": 34, "is_featured": False,
    },
]


async def seed_catalog() -> int:
    """Insert the sample catalog when no product exists yet. Returns products added."""
    if await count_products() > 0:
        return 0
    categories = [await create_category(**c) for c in SAMPLE_CATEGORIES]
    for p in SAMPLE_PRODUCTS:
        fields = dict(p)
        fields["category_id"] = categories[fields.pop("category")]["id"]
        fields["price"] = Decimal(fields["price"])
        if "original_price" in fields:
            fields["original_price"] = Decimal(fields["original_price"])
        fields["rating"] = Decimal(fields["rating"])
        fields["images"] = ["/api/placeholder/400/400"]
        await create_product(**fields)
    _logger.info("Sample catalog seeded | categories=%s products=%s", len(categories), len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)


async def amain():
    logging.basicConfig(level=logging.INFO)
    await init_db()
    try:
        added = await seed_catalog()
        print(f"Seed complete. Added {added} products.")
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(amain())
