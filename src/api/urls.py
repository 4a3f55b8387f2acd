"""Main API URL router for /api/v1/."""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from api.v1 import views as v1_views
from api.v1 import admin_views as admin_api_views
from api.v1 import issue_views as issue_api_views
from api.v1 import notification_views as notification_api_views
from api.v1 import sales_views as sales_api_views
from api.auth_views import (
    CookieTokenObtainPairView,
    CookieTokenRefreshView,
    LogoutAPIView,
    CSRFTokenAPIView,
)

router = DefaultRouter()
router.register(r'resources', v1_views.ResourceViewSet, basename='resource')
router.register(r'events', v1_views.EventViewSet, basename='event')
router.register(r'sales-reports', sales_api_views.SalesReportViewSet, basename='sales-report')
router.register(r'sales', sales_api_views.SalesViewSet, basename='sales')
router.register(r'issues', issue_api_views.IssueViewSet, basename='issue')
router.register(r'notifications', notification_api_views.NotificationViewSet, basename='notification')
router.register(r'audit-logs', v1_views.AuditLogViewSet, basename='audit-log')
router.register(r'admin/employee-master', admin_api_views.EmployeeMasterAdminViewSet, basename='admin-employee-master')
router.register(r'admin/olt', admin_api_views.OltAdminViewSet, basename='admin-olt')
router.register(r'admin/kam', admin_api_views.KamAdminViewSet, basename='admin-kam')
router.register(r'admin/ftth-pending', admin_api_views.FtthPendingAdminViewSet, basename='admin-ftth-pending')
router.register(r'admin/events', admin_api_views.EventImportViewSet, basename='admin-events')


app_name = 'api'
urlpatterns = [
    path('', include(router.urls)),

    # Auth endpoints
    path('auth/csrf/', CSRFTokenAPIView.as_view(), name='auth-csrf'),
    path('auth/token/', CookieTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', CookieTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', LogoutAPIView.as_view(), name='auth-logout'),
    path('auth/me/', v1_views.MeView.as_view(), name='auth-me'),

    # Hierarchy
    path('hierarchy/me/', v1_views.MyHierarchyView.as_view(), name='hierarchy-me'),
    path('hierarchy/link-profile/', v1_views.LinkProfileView.as_view(), name='hierarchy-link-profile'),
]
