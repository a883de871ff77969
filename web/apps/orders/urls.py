from django.urls import path

from .views import (
    AdminOrderStatusView,
    AdminOrdersView,
    CancelOrderView,
    ConfirmReceivedView,
    CustomerOrdersView,
    OrdersCollectionView,
    OrdersPingView,
    RetrieveOrderView,
)

app_name = "orders"

urlpatterns = [
    path("orders/ping/", OrdersPingView.as_view(), name="ping"),
    path("orders/", OrdersCollectionView.as_view(), name="orders-collection"),
    path("orders/by-customer/<str:customer_code>/", CustomerOrdersView.as_view(), name="orders-by-customer"),
    path("orders/<str:order_code>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("orders/<str:customer_code>/<str:order_code>/confirm/", ConfirmReceivedView.as_view(), name="orders-confirm"),
    path("orders/<str:customer_code>/<str:order_code>/cancel/", CancelOrderView.as_view(), name="orders-cancel"),
    path("admin/orders/", AdminOrdersView.as_view(), name="admin-orders"),
    path(
        "admin/orders/<str:customer_code>/<str:order_code>/status/",
        AdminOrderStatusView.as_view(),
        name="admin-orders-status",
    ),
]
