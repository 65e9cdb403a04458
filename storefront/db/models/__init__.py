from storefront.db.models.stored_value import StoredValue

__all__ = ["StoredValue"]
