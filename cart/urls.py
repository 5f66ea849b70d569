from django.urls import path

from . import views

app_name = "cart"
urlpatterns = [
    path("", views.cart_view, name="detail"),
    path("add", views.add_view, name="add"),
    path("update", views.update_view, name="update"),
    path("remove", views.remove_view, name="remove"),
    path("clear", views.clear_view, name="clear"),
    path("wishlist", views.wishlist_view, name="wishlist"),
    path("wishlist/add", views.wishlist_add_view, name="wishlist_add"),
    path("wishlist/remove", views.wishlist_remove_view, name="wishlist_remove"),
]
