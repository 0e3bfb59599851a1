import django_filters

from modules.orders.constants import OrderStatus
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=OrderStatus.choices)
    phone = django_filters.CharFilter(field_name="customer_phone", lookup_expr="icontains")
    order_number = django_filters.CharFilter(field_name="order_number", lookup_expr="iexact")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")
    min_total = django_filters.NumberFilter(field_name="total_amount", lookup_expr="gte")
    max_total = django_filters.NumberFilter(field_name="total_amount", lookup_expr="lte")
    shipping = django_filters.BooleanFilter(field_name="shipping")

    class Meta:
        model = Order
        fields = [
            "status",
            "phone",
            "order_number",
            "start_date",
            "end_date",
            "min_total",
            "max_total",
            "shipping",
        ]
