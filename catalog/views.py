from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET

from .models import Product


def _product_json(product):
    return {
        "id": product.pk,
        "name": product.name,
        "slug": product.slug,
        "price": str(product.price),
        "stock": product.stock,
        "in_stock": product.in_stock,
        "category": product.category.slug if product.category_id else None,
        "brand": product.brand,
        "image_url": product.image_url,
    }


@require_GET
def product_list_view(request):
    qs = Product.objects.filter(is_active=True).select_related("category")
    category = request.GET.get("category")
    if category:
        qs = qs.filter(category__slug=category)
    q = (request.GET.get("q") or "").strip()
    if q:
        qs = qs.filter(name__icontains=q)

    try:
        page = int(request.GET.get("page", "1"))
        if page < 1: page = 1
    except ValueError:
        page = 1
    page_size = 24
    start = (page - 1) * page_size
    end = start + page_size
    total = qs.count()
    items = [_product_json(p) for p in qs[start:end]]
    return JsonResponse({
        "items": items,
        "page": page,
        "total": total,
        "has_next": end < total,
        "has_prev": start > 0,
    })


@require_GET
def product_detail_view(request, slug: str):
    product = get_object_or_404(Product.objects.select_related("category"), slug=slug, is_active=True)
    return JsonResponse(_product_json(product))
