from django.contrib.auth.base_user import BaseUserManager


class UserManager(BaseUserManager):
    use_in_migrations = True

    def normalize_phone(self, phone: str):
        if not phone:
            return phone
        p = ''.join(ch for ch in phone if ch.isdigit() or ch == '+')
        # a '+' is only meaningful as the first character
        return p[:1] + p[1:].replace('+', '')

    def create_user(self, username, password=None, **extra_fields):
        if not username:
            raise ValueError('Username is required')
        username = self.model.normalize_username(username).strip().lower()
        if extra_fields.get('email'):
            extra_fields['email'] = self.normalize_email(extra_fields['email']).lower()
        if extra_fields.get('phone'):
            extra_fields['phone'] = self.normalize_phone(extra_fields['phone'])
        user = self.model(username=username, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, username, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', 'superadmin')
        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')
        return self.create_user(username, password, **extra_fields)
