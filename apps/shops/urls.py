from django.urls import path
from . import views

app_name = 'shops'

urlpatterns = [
    # ==========================================
    # ORDERS
    # ==========================================
    path('orders/', views.orders_collection, name='orders'),
    path('orders/<str:order_id>/', views.order_detail, name='order_detail'),
    path('orders/<str:order_id>/status/', views.order_status_update, name='order_status_update'),
    path('orders/<str:order_id>/cancel/', views.order_cancel, name='order_cancel'),
    path('orders/<str:order_id>/refund/', views.order_refund_request, name='order_refund_request'),
    path('orders/<str:order_id>/refund/decision/', views.order_refund_decision, name='order_refund_decision'),

    # ==========================================
    # WITHDRAWALS
    # ==========================================
    path('withdrawals/', views.withdrawals_collection, name='withdrawals'),
    path('withdrawals/<str:request_id>/accept/', views.withdrawal_accept, name='withdrawal_accept'),
    path('withdrawals/<str:request_id>/reject/', views.withdrawal_reject, name='withdrawal_reject'),

    # ==========================================
    # SELLER SHOP
    # ==========================================
    path('shop/balance/', views.shop_balance, name='shop_balance'),
    path('shop/bank-accounts/', views.bank_accounts, name='bank_accounts'),
    path('shop/bank-accounts/<str:account_number>/', views.bank_account_delete, name='bank_account_delete'),

    # Admin
    path('admin/revenue/', views.admin_revenue, name='admin_revenue'),
]
