# urls.py
from rest_framework.routers import DefaultRouter
from .views import RestaurantViewSet, TableViewSet

router = DefaultRouter()
router.register('restaurants', RestaurantViewSet, basename='restaurant')
router.register('tables', TableViewSet, basename='table')

urlpatterns = router.urls
