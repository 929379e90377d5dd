"""
Management command to seed the database with sample data.

Likes, comments, views and downloads are recorded through catalog.services,
so the cached counters come out consistent with the fact tables.

Usage: python manage.py seed_data
"""

import json
import random

from django.contrib.auth.models import User
from django.core.files.base import ContentFile
from django.core.management.base import BaseCommand

from catalog import services
from catalog.models import Comment, Download, Follow, Like, Model3D, ModelView, Order, Profile

TITLES = [
    "Low-poly fox",
    "Sci-fi crate",
    "Medieval tower",
    "Desert buggy",
    "Pine tree pack",
    "Robot mascot",
    "Street lamp",
    "Cargo van",
    "Stone bridge",
    "Mushroom cluster",
]

TAGS = ['lowpoly', 'pbr', 'rigged', 'game-ready', 'stylized', 'realistic', 'animated', 'scan']

COMMENT_TEXTS = [
    "Great topology!",
    "What's the poly count on this?",
    "Thanks for sharing!",
    "Could you add a rigged version?",
    "This is exactly what I was looking for.",
    "Textures look fantastic.",
    "Works great in my scene.",
    "+1 to this",
]


def _gltf_file(title):
    """Smallest valid glTF document, good enough for demo downloads."""
    payload = json.dumps({'asset': {'version': '2.0', 'generator': 'seed_data'}, 'extras': {'title': title}})
    return ContentFile(payload.encode(), name=f"{title.lower().replace(' ', '-')}.gltf")


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--users',
            type=int,
            default=10,
            help='Number of users to create'
        )
        parser.add_argument(
            '--models',
            type=int,
            default=20,
            help='Number of 3D models to create'
        )
        parser.add_argument(
            '--comments',
            type=int,
            default=60,
            help='Number of comments to create'
        )
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding'
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            for model in (Download, ModelView, Order, Like, Comment, Follow, Model3D):
                model.objects.all().delete()
            User.objects.filter(is_superuser=False).delete()

        self.stdout.write('Creating users...')
        users = self._create_users(options['users'])
        creators = [u for u in users if u.profile.can_publish]

        self.stdout.write('Creating models...')
        models = self._create_models(creators, options['models'])

        self.stdout.write('Creating comments...')
        comments = self._create_comments(users, models, options['comments'])

        self.stdout.write('Creating likes, views, downloads and follows...')
        self._create_activity(users, models)

        self.stdout.write(self.style.SUCCESS(
            f'Successfully created:\n'
            f'  - {len(users)} users ({len(creators)} creators)\n'
            f'  - {len(models)} models\n'
            f'  - {len(comments)} comments\n'
            f'  - Likes, views, downloads, orders and follows'
        ))

    def _create_users(self, count):
        users = []
        for i in range(count):
            username = f'user{i+1}'
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username=username,
                    email=f'{username}@example.com',
                    password='password123'
                )
            # Every third user publishes models
            if i % 3 == 0 and not user.profile.can_publish:
                Profile.objects.filter(user=user).update(role=Profile.Role.CREATOR)
                user.profile.refresh_from_db()
            users.append(user)
        return users

    def _create_models(self, creators, count):
        if not creators:
            return []
        models = []
        for i in range(count):
            title = f"{random.choice(TITLES)} #{i+1}"
            is_free = random.random() < 0.7
            models.append(Model3D.objects.create(
                owner=random.choice(creators),
                title=title,
                description=f"Demo asset {title}.",
                category=random.choice(Model3D.Category.values),
                tags=','.join(random.sample(TAGS, k=3)),
                license=random.choice(Model3D.License.values),
                file=_gltf_file(title),
                file_size=len(title) + 64,
                file_type='gltf',
                is_free=is_free,
                price=0 if is_free else random.choice([2, 5, 10, 25]),
                is_featured=random.random() < 0.2,
            ))
        return models

    def _create_comments(self, users, models, count):
        comments = []
        if not models:
            return comments
        for _ in range(count):
            model = random.choice(models)

            # 30% chance of being a reply to an existing comment
            parent = None
            existing = [c for c in comments if c.model_id == model.id]
            if existing and random.random() < 0.3:
                parent = random.choice(existing)

            try:
                comments.append(services.add_comment(
                    random.choice(users), model.id, random.choice(COMMENT_TEXTS), parent=parent
                ))
            except ValueError:
                # Reply chain hit the max depth
                continue
        return comments

    def _create_activity(self, users, models):
        for model in models:
            for user in random.sample(users, k=len(users) // 2):
                services.like_model(user, model.id)
            for _ in range(random.randint(1, 15)):
                services.record_view(model, user=random.choice(users), ip_address='127.0.0.1')

            for user in random.sample(users, k=min(3, len(users))):
                if not model.is_free and user.id != model.owner_id:
                    services.purchase_model(user, model.id, payment_token='tok_visa')
                services.record_download(user, model.id, ip_address='127.0.0.1')

        for user in users:
            for target in random.sample(users, k=min(3, len(users))):
                if target.id != user.id and not Follow.objects.filter(follower=user, following=target).exists():
                    services.follow_user(user, target)
