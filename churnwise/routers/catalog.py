from fastapi import APIRouter, HTTPException

from churnwise.schemas.card import CardProduct
from churnwise.schemas.catalog import CatalogSummary, IssuerSummary
from churnwise.services.catalog_loader import get_catalog

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("", response_model=CatalogSummary)
def catalog_summary():
    catalog = get_catalog()
    return CatalogSummary(
        version=catalog.version,
        issuers=[
            IssuerSummary(
                issuer=issuer,
                display_name=catalog.display_name(issuer),
                rule_count=len(catalog.rules_for(issuer)),
            )
            for issuer in catalog.issuers()
        ],
        product_count=len(catalog.products),
        issues=[str(i) for i in catalog.issues],
    )


@router.get("/products", response_model=list[CardProduct])
def list_products(issuer: str | None = None):
    products = get_catalog().products.values()
    if issuer:
        return [p for p in products if p.issuer == issuer.lower()]
    return list(products)


@router.get("/products/{product_id:path}", response_model=CardProduct)
def get_product(product_id: str):
    product = get_catalog().product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Card product not found")
    return product
