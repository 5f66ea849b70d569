from django.urls import path

from . import views

app_name = "orders"
urlpatterns = [
    path("", views.my_orders_view, name="my_orders"),
    path("create", views.create_order_view, name="create"),
    path("bulk-update", views.bulk_update_view, name="bulk_update"),
    path("analytics", views.order_analytics_view, name="analytics"),
    path("<int:order_id>", views.order_detail_view, name="detail"),
    path("<int:order_id>/cancel", views.cancel_order_view, name="cancel"),
    path("<int:order_id>/cancel-items", views.cancel_items_view, name="cancel_items"),
    path("<int:order_id>/status", views.order_status_view, name="status"),
]
