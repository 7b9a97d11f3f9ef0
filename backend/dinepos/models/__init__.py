from .identity import Account, AdminUser
from .tenancy import Restaurant, RestaurantSession
from .catalog import Category, Subcategory, Product, ProductImage, Variant, VariantAttribute
from .orders import Order, OrderItem

__all__ = [
    'Account', 'AdminUser',
    'Restaurant', 'RestaurantSession',
    'Category', 'Subcategory', 'Product', 'ProductImage', 'Variant', 'VariantAttribute',
    'Order', 'OrderItem',
]
