# assignments/urls.py

from django.urls import path
from . import ajax_views

app_name = 'assignments'

urlpatterns = [
    # Creation
    path('create/', ajax_views.create_assignment, name='create_assignment'),

    # Bridged fees
    path('pupils/<uuid:pupil_id>/fees/', ajax_views.pupil_fees, name='pupil_fees'),
    path('fees/<str:fee_id>/pay/', ajax_views.record_payment, name='record_payment'),
    path('payments/<uuid:payment_id>/reverse/', ajax_views.reverse_payment, name='reverse_payment'),

    # Requirement reception and uniform collection
    path('requirement/<uuid:assignment_id>/receive/', ajax_views.record_reception, name='record_reception'),
    path('uniform/<uuid:assignment_id>/collect/', ajax_views.record_collection, name='record_collection'),

    # Lifecycle
    path('<slug:kind>/<uuid:assignment_id>/', ajax_views.assignment_detail, name='assignment_detail'),
    path('<slug:kind>/<uuid:assignment_id>/remove/', ajax_views.remove_assignment, name='remove_assignment'),
    path('<slug:kind>/<uuid:assignment_id>/enable/', ajax_views.enable_assignment, name='enable_assignment'),
    path('<slug:kind>/<uuid:assignment_id>/disable/', ajax_views.disable_assignment, name='disable_assignment'),
    path('<slug:kind>/<uuid:assignment_id>/adjust-time/', ajax_views.adjust_time_settings, name='adjust_time_settings'),
]
