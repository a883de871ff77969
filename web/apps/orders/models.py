from django.db import models


class CustomerModel(models.Model):
    # Customer document: orders are embedded as a JSON array, not a table
    code = models.CharField(max_length=32, unique=True)
    full_name = models.CharField(max_length=200)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")
    address = models.CharField(max_length=300, blank=True, default="")

    orders = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "customers"
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} - {self.full_name}"
