# users/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.translation import gettext_lazy as _
from django.utils import timezone


class CustomUser(AbstractUser):
    """
    Guest or restaurant staff account.
    Staff accounts are attached to the restaurant whose console they operate.
    """

    class Role(models.TextChoices):
        """
        User roles enumeration for role-based access control.
        """
        CUSTOMER = 'customer', _('Customer')
        STAFF = 'staff', _('Staff')
        MANAGER = 'manager', _('Manager')
        ADMIN = 'admin', _('Admin')

    role = models.CharField(
        _('role'),
        max_length=20,
        choices=Role.choices,
        default=Role.CUSTOMER,
        db_index=True,
        help_text=_('User role for access control.')
    )

    phone = models.CharField(_('phone'), max_length=20, blank=True)

    # Restaurant operated by staff and managers (empty for guests and admins)
    restaurant = models.ForeignKey(
        'restaurant.Restaurant',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='staff_members',
    )

    date_joined = models.DateTimeField(
        _('date joined'),
        default=timezone.now
    )

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['email', 'role'], name='users_custo_email_7b5c1e_idx'),
            models.Index(fields=['is_active', 'role'], name='users_custo_is_acti_3f0d2a_idx'),
        ]

    def __str__(self):
        return self.username

    @property
    def display_name(self):
        """Full name when known, username otherwise."""
        return self.get_full_name() or self.username

    @property
    def is_customer(self):
        return self.role == self.Role.CUSTOMER

    @property
    def is_restaurant_staff(self):
        """Staff, managers and admins can all run the staff console."""
        return self.role in (self.Role.STAFF, self.Role.MANAGER, self.Role.ADMIN)

    @property
    def is_manager(self):
        return self.role == self.Role.MANAGER

    @property
    def is_admin(self):
        return self.role == self.Role.ADMIN

    def has_role(self, *roles):
        """
        Check if user has any of the specified roles.
        """
        return self.role in roles

    def works_at(self, restaurant_id) -> bool:
        """
        Admins operate every restaurant; other staff only their own.
        """
        if self.is_admin:
            return True
        return self.is_restaurant_staff and self.restaurant_id == restaurant_id
