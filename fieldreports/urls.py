"""URL declarations for the field reports application.

Record screens are keyed by the record kind slug (``fast_eval``,
``maintenance`` or ``attendance``) so the list, form, selection and export
views are shared between the three report types.
"""

from django.urls import path

from . import views

urlpatterns = [
    # Authentication
    path('login/', views.login_view, name='login'),
    path('logout/', views.logout_view, name='logout'),
    # Language toggle
    path('lang/<str:lang>/', views.toggle_language, name='toggle_language'),
    path('', views.home, name='home'),
    # Dashboards
    path('fast-eval/results/', views.fast_eval_results, name='fast_eval_results'),
    path('maintenance/dashboard/', views.maintenance_dashboard, name='maintenance_dashboard'),
    # Records
    path('records/<str:kind>/', views.record_list, name='record_list'),
    path('records/<str:kind>/new/', views.record_create, name='record_create'),
    path('records/<str:kind>/selection/', views.record_selection, name='record_selection'),
    path('records/<str:kind>/export/', views.record_export, name='record_export'),
    path('records/<str:kind>/<path:record_id>/edit/', views.record_edit, name='record_edit'),
]
