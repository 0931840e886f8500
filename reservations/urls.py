from django.urls import path
from . import views

app_name = 'reservations'

urlpatterns = [
    path('', views.reservation_list_view, name='reservation_list'),
    path('expire-unpaid/', views.expire_unpaid_view, name='expire_unpaid'),
    path('alternatives/<int:class_id>/', views.alternative_classes_view, name='alternative_classes'),
    path('<int:reservation_id>/', views.reservation_detail_view, name='reservation_detail'),
    path('<int:reservation_id>/upgrade/', views.upgrade_reservation_view, name='upgrade_reservation'),
    path('<int:reservation_id>/status/', views.update_status_view, name='update_status'),
]
