"""In-process catalog of product types and products."""

from typing import Optional

from commerce_common.audit import AuditTrail
from commerce_common.errors import DeletionBlocked, EntityConflict, EntityNotFound

from .logger import logger
from .schemas import Product, ProductCreate, ProductType, ProductTypeCreate, ProductTypeUpdate, ProductUpdate
from .validation import dump_attributes, validate_attributes, validate_schema


class CatalogState:
    """Holds product types and products and enforces their schemas."""

    def __init__(self, audit: Optional[AuditTrail] = None) -> None:
        self.audit = audit or AuditTrail()
        self._types: dict[str, ProductType] = {}
        self._products: dict[str, Product] = {}

    # product types

    def create_product_type(self, data: ProductTypeCreate, user_id: Optional[str] = None) -> ProductType:
        """Validate the schema and store a new product type.

        Raises:
            SchemaInvalid: If the schema is malformed.
            EntityConflict: If the slug is already used.
        """
        field_schema = validate_schema(data.schema_json)
        if self._find_by_slug(data.slug):
            raise EntityConflict("Product type with this slug already exists", slug=data.slug)

        product_type = ProductType(
            name=data.name,
            slug=data.slug,
            field_schema=field_schema,
            active=data.active,
            sort_order=data.sort_order,
        )
        self._types[product_type.id] = product_type
        logger.info(f"Product type created | id={product_type.id} | slug={product_type.slug}")
        self.audit.log("CREATE", "product_types", product_type.id, user_id, new_values=product_type.model_dump(mode="json"))
        return product_type

    def get_product_type(self, type_id: str) -> ProductType:
        product_type = self._types.get(type_id)
        if not product_type:
            raise EntityNotFound("Product type not found", id=type_id)
        return product_type

    def get_product_type_by_slug(self, slug: str) -> ProductType:
        product_type = self._find_by_slug(slug)
        if not product_type:
            raise EntityNotFound("Product type not found", slug=slug)
        return product_type

    def list_product_types(self) -> list[ProductType]:
        return sorted(self._types.values(), key=lambda t: t.sort_order)

    def update_product_type(self, type_id: str, data: ProductTypeUpdate, user_id: Optional[str] = None) -> ProductType:
        """Apply a partial update, re-validating the schema if one is given.

        Existing products are not re-validated against a new schema. Null
        fields in the update are ignored.
        """
        old = self.get_product_type(type_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"schema_json"})
        if data.schema_json is not None:
            changes["field_schema"] = validate_schema(data.schema_json)
        if data.slug and data.slug != old.slug and self._find_by_slug(data.slug):
            raise EntityConflict("Product type with this slug already exists", slug=data.slug)

        updated = old.model_copy(update=changes)
        self._types[type_id] = updated
        self.audit.log(
            "UPDATE",
            "product_types",
            type_id,
            user_id,
            old_values=old.model_dump(mode="json"),
            new_values=updated.model_dump(mode="json"),
        )
        return updated

    def remove_product_type(self, type_id: str, user_id: Optional[str] = None) -> ProductType:
        product_type = self.get_product_type(type_id)
        product_count = sum(1 for p in self._products.values() if p.type_id == type_id)
        if product_count > 0:
            raise DeletionBlocked(
                f"Cannot delete product type with {product_count} associated products", id=type_id
            )
        del self._types[type_id]
        self.audit.log("DELETE", "product_types", type_id, user_id, old_values=product_type.model_dump(mode="json"))
        return product_type

    def _find_by_slug(self, slug: str) -> Optional[ProductType]:
        return next((t for t in self._types.values() if t.slug == slug), None)

    # products

    def create_product(self, data: ProductCreate, user_id: Optional[str] = None) -> Product:
        """Validate attributes against the product type and store the product."""
        product_type = self.get_product_type(data.type_id)
        typed = validate_attributes(product_type.field_schema, data.attributes)
        product = Product(
            type_id=product_type.id,
            title=data.title,
            base_price=data.base_price,
            currency=data.currency,
            attributes=dump_attributes(typed),
        )
        self._products[product.id] = product
        logger.info(f"Product created | id={product.id} | type={product_type.slug}")
        self.audit.log("CREATE", "products", product.id, user_id, new_values=product.model_dump(mode="json"))
        return product

    def get_product(self, product_id: str) -> Product:
        product = self._products.get(product_id)
        if not product:
            raise EntityNotFound("Product not found", id=product_id)
        return product

    def update_product(self, product_id: str, data: ProductUpdate, user_id: Optional[str] = None) -> Product:
        old = self.get_product(product_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"attributes"})
        if data.attributes is not None:
            product_type = self.get_product_type(old.type_id)
            changes["attributes"] = dump_attributes(validate_attributes(product_type.field_schema, data.attributes))

        updated = old.model_copy(update=changes)
        self._products[product_id] = updated
        self.audit.log(
            "UPDATE",
            "products",
            product_id,
            user_id,
            old_values=old.model_dump(mode="json"),
            new_values=updated.model_dump(mode="json"),
        )
        return updated

    def remove_product(self, product_id: str, user_id: Optional[str] = None) -> Product:
        product = self.get_product(product_id)
        del self._products[product_id]
        self.audit.log("DELETE", "products", product_id, user_id, old_values=product.model_dump(mode="json"))
        return product
