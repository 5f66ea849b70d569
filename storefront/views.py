from django.http import JsonResponse


def error_404_view(request, exception):
    return JsonResponse({"error": "Not found", "path": request.path}, status=404)


def error_500_view(request):
    return JsonResponse({"error": "An error occurred. Please try again later."}, status=500)


def health_view(request):
    return JsonResponse({"ok": True})
