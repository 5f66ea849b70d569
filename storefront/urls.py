from django.contrib import admin
from django.urls import include, path

from . import views

admin.site.site_header = "Storefront administration"
admin.site.site_title = "Storefront admin"

urlpatterns = [
    path("admin/", admin.site.urls),
    path("health", views.health_view, name="health"),
    path("accounts/", include("accounts.urls")),
    path("analytics/", include("analytics.urls")),
    path("cart/", include("cart.urls")),
    path("catalog/", include("catalog.urls")),
    path("coupons/", include("coupons.urls")),
    path("orders/", include("orders.urls")),
    path("payments/", include("payments.urls")),
]

handler404 = "storefront.views.error_404_view"
handler500 = "storefront.views.error_500_view"
