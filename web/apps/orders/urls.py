from django.urls import path

from .views import (
    BuyerOrdersView,
    OrdersCollectionView,
    OrdersPingView,
    OrderStatusView,
    RetrieveOrderView,
    SellerOrdersView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # POST create
    path("mine/", BuyerOrdersView.as_view(), name="orders-mine"),
    path("selling/", SellerOrdersView.as_view(), name="orders-selling"),
    path("<str:oid>/", RetrieveOrderView.as_view(), name="orders-detail"),
    path("<str:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
]
