import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from churnwise.config import settings
from churnwise.schemas.card import BenefitUsage, CardHistory, CardProduct, UserCardRecord
from churnwise.schemas.catalog import CatalogIssue, RuleCatalog
from churnwise.schemas.rule import Rule, parse_rule

logger = logging.getLogger(__name__)

_catalog: RuleCatalog = RuleCatalog()
_last_fingerprint: str = ""

_TRACKED_EXTENSIONS = (".yaml", ".yml")


class CatalogNotFoundError(FileNotFoundError):
    pass


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


def _read_yaml(path: Path):
    with open(path) as f:
        return yaml.safe_load(f)


def _parse_rules(
    raw_rules: list, default_issuer: str | None, issues: list[CatalogIssue], seen: set[str]
) -> list[Rule]:
    rules: list[Rule] = []
    for raw in raw_rules or []:
        if not isinstance(raw, dict):
            issues.append(CatalogIssue(issuer=default_issuer, message=f"Skipped malformed rule entry: {raw!r}"))
            continue
        if default_issuer and "issuer" not in raw:
            raw = {**raw, "issuer": default_issuer}
        rule_id = raw.get("id")
        issuer = str(raw.get("issuer") or default_issuer or "").lower() or None
        try:
            rule = parse_rule(raw)
        except ValidationError as exc:
            logger.warning("Skipping rule %s: validation error: %s", rule_id, exc)
            issues.append(CatalogIssue(
                issuer=issuer, entry_id=rule_id,
                message=f"rule skipped, invalid fields ({_describe(exc)})",
            ))
            continue
        if rule.id in seen:
            logger.warning("Skipping rule %s: duplicate id", rule.id)
            issues.append(CatalogIssue(issuer=rule.issuer, entry_id=rule.id, message="duplicate rule id skipped"))
            continue
        seen.add(rule.id)
        rules.append(rule)
    return rules


def _parse_product(
    raw: dict, product_id: str, default_issuer: str | None, issues: list[CatalogIssue]
) -> CardProduct | None:
    data = {"id": product_id, **raw}
    if default_issuer:
        data.setdefault("issuer", default_issuer)
    try:
        return CardProduct(**data)
    except (ValidationError, TypeError) as exc:
        logger.warning("Skipping product %s: validation error: %s", product_id, exc)
        detail = _describe(exc) if isinstance(exc, ValidationError) else str(exc)
        issues.append(CatalogIssue(
            issuer=default_issuer, entry_id=product_id, message=f"product skipped ({detail})",
        ))
        return None


def parse_catalog(data: dict, version: str = "") -> RuleCatalog:
    """Build a catalog from one already-parsed document.

    Expected keys: `version`, `issuers` (id -> display name), `rules` (list),
    `products` (list, or mapping of id -> product). Invalid entries are left
    out and reported in `RuleCatalog.issues`.
    """
    data = data or {}
    issues: list[CatalogIssue] = []
    rules = _parse_rules(data.get("rules") or [], None, issues, set())

    products: dict[str, CardProduct] = {}
    raw_products = data.get("products") or []
    if isinstance(raw_products, dict):
        raw_products = [{"id": pid, **(p or {})} for pid, p in raw_products.items()]
    for raw in raw_products:
        if not isinstance(raw, dict) or not raw.get("id"):
            issues.append(CatalogIssue(message=f"Skipped product entry without id: {raw!r}"))
            continue
        product = _parse_product(raw, raw["id"], None, issues)
        if product:
            products[product.id] = product

    issuer_names = {str(k).lower(): str(v) for k, v in (data.get("issuers") or {}).items()}
    return RuleCatalog(
        version=str(data.get("version") or version),
        rules=tuple(rules),
        products=products,
        issuer_names=issuer_names,
        issues=tuple(issues),
    )


def _load_directory(catalog_dir: Path) -> RuleCatalog:
    """Load `<issuer>/rules.yaml` and `<issuer>/<card>/card.yaml` files.

    Product ids are `<issuer>/<card>`, matching the directory layout.
    """
    issues: list[CatalogIssue] = []
    rules: list[Rule] = []
    products: dict[str, CardProduct] = {}
    issuer_names: dict[str, str] = {}
    seen: set[str] = set()
    version = ""

    meta_file = catalog_dir / "catalog.yaml"
    if meta_file.exists():
        try:
            meta = _read_yaml(meta_file) or {}
            version = str(meta.get("version") or "")
        except yaml.YAMLError as exc:
            logger.warning("Ignoring catalog.yaml: failed to parse YAML: %s", exc)

    for issuer_dir in sorted(catalog_dir.iterdir()):
        if not issuer_dir.is_dir() or issuer_dir.name.startswith("."):
            continue
        issuer = issuer_dir.name.lower()

        rules_file = issuer_dir / "rules.yaml"
        if rules_file.exists():
            try:
                data = _read_yaml(rules_file) or {}
            except yaml.YAMLError as exc:
                logger.warning("Skipping rules for %s: failed to parse YAML: %s", issuer, exc)
                issues.append(CatalogIssue(issuer=issuer, message="rules file could not be parsed"))
                data = {}
            if data.get("display_name"):
                issuer_names[issuer] = str(data["display_name"])
            rules.extend(_parse_rules(data.get("rules") or [], issuer, issues, seen))

        for card_dir in sorted(issuer_dir.iterdir()):
            if not card_dir.is_dir() or card_dir.name.startswith("."):
                continue
            yaml_file = card_dir / "card.yaml"
            if not yaml_file.exists():
                continue
            product_id = f"{issuer}/{card_dir.name}"
            try:
                data = _read_yaml(yaml_file)
            except yaml.YAMLError as exc:
                logger.warning("Skipping product %s: failed to parse YAML: %s", product_id, exc)
                issues.append(CatalogIssue(issuer=issuer, entry_id=product_id, message="card file could not be parsed"))
                continue
            if data is None:
                continue
            product = _parse_product(data, product_id, issuer, issues)
            if product:
                products[product.id] = product

    return RuleCatalog(
        version=version or _compute_fingerprint(catalog_dir),
        rules=tuple(rules),
        products=products,
        issuer_names=issuer_names,
        issues=tuple(issues),
    )


def _compute_fingerprint(path: Path) -> str:
    """Fingerprint a catalog file or directory based on file mtimes."""
    if path.is_file():
        st = path.stat()
        return f"1:{st.st_mtime}"
    if not path.exists():
        return ""
    max_mtime = 0.0
    count = 0
    for root, dirs, files in os.walk(path):
        # Skip hidden directories
        dirs[:] = [d for d in dirs if not d.startswith(".")]
        for name in files:
            if not name.lower().endswith(_TRACKED_EXTENSIONS):
                continue
            try:
                st = os.stat(os.path.join(root, name))
                if st.st_mtime > max_mtime:
                    max_mtime = st.st_mtime
                count += 1
            except OSError:
                continue
    return f"{count}:{max_mtime}"


def load_catalog(path: str | Path) -> RuleCatalog:
    """Load a rule catalog from a single YAML file or a catalog directory."""
    path = Path(path)
    if not path.exists():
        raise CatalogNotFoundError(f"Rule catalog not found: {path}")
    if path.is_dir():
        catalog = _load_directory(path)
    else:
        catalog = parse_catalog(_read_yaml(path) or {}, version=_compute_fingerprint(path))
    logger.info(
        "Loaded rule catalog %s: %d rules, %d products, %d issues",
        catalog.version, len(catalog.rules), len(catalog.products), len(catalog.issues),
    )
    return catalog


def load_configured_catalog() -> RuleCatalog:
    """Load the catalog at `settings.rules_catalog_path` and make it current.

    Builds the new catalog first and swaps the global in one assignment.
    """
    global _catalog, _last_fingerprint
    path = Path(settings.rules_catalog_path)
    _catalog = load_catalog(path)
    _last_fingerprint = _compute_fingerprint(path)
    return _catalog


def reload_if_changed() -> bool:
    """Reload the configured catalog if its files have changed.

    Returns True if the catalog was reloaded.
    """
    fp = _compute_fingerprint(Path(settings.rules_catalog_path))
    if fp == _last_fingerprint:
        return False
    logger.info("Rule catalog changed, reloading...")
    load_configured_catalog()
    return True


def get_catalog() -> RuleCatalog:
    return _catalog


def set_catalog(catalog: RuleCatalog) -> None:
    global _catalog
    _catalog = catalog


# --- Card history ---

def parse_card_history(data: dict, catalog: RuleCatalog | None = None) -> CardHistory:
    """Validate a user's card records, rejecting bad ones with a warning.

    Missing `issuer` and `product_family` fields are filled in from the
    catalog's product definitions when available.
    """
    data = data or {}
    cards: list[UserCardRecord] = []
    warnings: list[str] = []

    for raw in data.get("cards") or []:
        card_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            card = UserCardRecord(**raw)
        except (ValidationError, TypeError) as exc:
            detail = _describe(exc) if isinstance(exc, ValidationError) else str(exc)
            logger.warning("Rejected card record %s: %s", card_id, detail)
            warnings.append(f"Card {card_id or '?'} was rejected and not evaluated: {detail}")
            continue

        product = catalog.product(card.product_id) if catalog else None
        if product is not None:
            updates = {}
            if card.issuer is None:
                updates["issuer"] = product.issuer
            if card.product_family is None and product.product_family:
                updates["product_family"] = product.product_family
            if updates:
                card = card.model_copy(update=updates)
        cards.append(card)

    usage: dict[str, list[BenefitUsage]] = {}
    for card_id, entries in (data.get("benefit_usage") or {}).items():
        for raw in entries or []:
            try:
                entry = BenefitUsage(**raw)
            except (ValidationError, TypeError) as exc:
                logger.warning("Ignoring benefit usage for %s: %s", card_id, exc)
                warnings.append(f"Benefit usage entry for card {card_id} was ignored")
                continue
            usage.setdefault(str(card_id), []).append(entry)

    return CardHistory(cards=cards, benefit_usage=usage, warnings=warnings)


def load_card_history(path: str | Path, catalog: RuleCatalog | None = None) -> CardHistory:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Card history not found: {path}")
    return parse_card_history(_read_yaml(path) or {}, catalog)
