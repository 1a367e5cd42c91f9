from django.test import TestCase

from .models import User


class UserModelTests(TestCase):
    def test_create_user(self):
        user = User.objects.create_user(email="user@example.com", full_name="User", password="pass")
        self.assertTrue(user.check_password("pass"))
        self.assertFalse(user.is_staff)

    def test_create_superuser_is_system_admin(self):
        user = User.objects.create_superuser(email="admin@example.com", full_name="Admin", password="pass")
        self.assertTrue(user.is_superuser)
        self.assertTrue(user.is_system_admin)

    def test_display_name_falls_back_to_email(self):
        user = User.objects.create_user(email="maria@example.com", password="pass")
        self.assertEqual(user.display_name, "maria")
        self.assertEqual(str(user), "maria@example.com")

    def test_email_is_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email="", full_name="Sem email", password="pass")
