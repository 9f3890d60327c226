from django.db import models


class Restaurant(models.Model):
    """
    Catalog entry. Bookings only read the name (denormalized onto each booking).
    """

    name = models.CharField(max_length=100)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=20, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Table(models.Model):
    """
    Floor-plan table. Only the data matters here: which tables exist,
    how many seats they have and whether they are in service.
    """

    restaurant = models.ForeignKey(
        Restaurant, on_delete=models.CASCADE, related_name='tables')

    name = models.CharField(max_length=50)
    capacity = models.PositiveIntegerField()
    is_active = models.BooleanField(default=True)

    # Order in which the floor plan lists the tables
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['restaurant', 'position', 'id']
        # Table name should be unique PER restaurant
        unique_together = ('restaurant', 'name')

    def __str__(self):
        return f"{self.restaurant.name} - {self.name}"
