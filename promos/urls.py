from django.urls import path
from . import views

app_name = 'promos'

urlpatterns = [
    path('', views.promo_list_view, name='promo_list'),
    path('validate-code/', views.validate_code_view, name='validate_code'),
    path('<int:promo_id>/', views.promo_detail_view, name='promo_detail'),
]
