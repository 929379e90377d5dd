"""
Data Models for Sharespace
==========================

Design Notes:
-------------
1. Model3D is the content entity: one uploaded 3D file plus its metadata.
   It carries four cached counters (likes, comments, downloads, views).
   - The counters are a read-path cache for listings and detail pages.
   - The fact tables (Like, Comment, Download, ModelView) are the source of truth.
   - Counters are only ever changed by relative UPDATEs in catalog.counters,
     or overwritten from live fact counts by counters.reconcile().

2. Likes are unique per (model, user), enforced at DB level.
   Downloads and views are append-only and may be anonymous.

3. Comments use an adjacency list (parent_id FK). Deleting a comment
   cascades to its replies.

4. Orders simulate a payment flow. A completed order unlocks downloads
   of a paid model; a refund revokes it.

Indexes Strategy:
-----------------
- model.is_public + model.created_at: browse listing
- fact.model + fact.created_at: per-model analytics and reconcile counts
- like.model + like.user: uniqueness + "did I like this" lookup
"""

from django.contrib.auth.models import User
from django.core.validators import MinLengthValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class FactKind(models.TextChoices):
    """The user actions whose occurrences are cached as counters on Model3D."""
    LIKE = 'like', 'Like'
    COMMENT = 'comment', 'Comment'
    DOWNLOAD = 'download', 'Download'
    VIEW = 'view', 'View'


class Profile(models.Model):
    """
    Public profile attached to every auth user.

    Created by a post_save signal on User (see signals.py).
    """

    class Role(models.TextChoices):
        USER = 'USER', 'User'
        CREATOR = 'CREATOR', 'Creator'
        MODERATOR = 'MODERATOR', 'Moderator'
        ADMIN = 'ADMIN', 'Admin'

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile'
    )
    display_name = models.CharField(max_length=100, blank=True)
    bio = models.TextField(max_length=500, blank=True)
    avatar_url = models.URLField(blank=True)
    website = models.URLField(blank=True)
    location = models.CharField(max_length=100, blank=True)
    social_links = models.JSONField(default=dict, blank=True)
    role = models.CharField(
        max_length=20,
        choices=Role.choices,
        default=Role.USER
    )
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def can_publish(self) -> bool:
        return self.role in (self.Role.CREATOR, self.Role.ADMIN)

    def __str__(self):
        return f"Profile({self.user.username}, {self.role})"


class Follow(models.Model):
    follower = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='following_set'
    )
    following = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='follower_set'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['follower', 'following'],
                name='unique_follow_per_pair'
            )
        ]

    def __str__(self):
        return f"{self.follower.username} -> {self.following.username}"


class Model3D(models.Model):
    """
    An uploaded 3D model file and its metadata.

    COUNTER INVARIANT:
    like_count / comment_count / download_count / view_count each equal the
    number of matching fact rows, between transactions. Never assign them on
    an instance and save(); use catalog.counters.
    """

    class Category(models.TextChoices):
        CHARACTERS = 'characters', 'Characters'
        VEHICLES = 'vehicles', 'Vehicles'
        BUILDINGS = 'buildings', 'Buildings'
        PROPS = 'props', 'Props'
        NATURE = 'nature', 'Nature'
        OTHER = 'other', 'Other'

    class License(models.TextChoices):
        CC0 = 'cc0', 'CC0'
        CC_BY = 'cc-by', 'CC BY'
        CC_BY_SA = 'cc-by-sa', 'CC BY-SA'
        CC_BY_NC = 'cc-by-nc', 'CC BY-NC'
        CC_BY_NC_SA = 'cc-by-nc-sa', 'CC BY-NC-SA'
        OTHER = 'other', 'Other'

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='models3d',
        db_index=True
    )
    title = models.CharField(
        max_length=100,
        validators=[MinLengthValidator(1)]
    )
    description = models.TextField(max_length=1000, blank=True)
    category = models.CharField(
        max_length=20,
        choices=Category.choices,
        default=Category.OTHER,
        db_index=True
    )
    # Comma-separated, normalized to lowercase
    tags = models.CharField(max_length=250, blank=True)
    license = models.CharField(
        max_length=20,
        choices=License.choices,
        default=License.CC_BY
    )

    file = models.FileField(upload_to='models/%Y/%m/')
    file_size = models.PositiveBigIntegerField(default=0)
    file_type = models.CharField(max_length=20)
    thumbnail_url = models.URLField(blank=True)

    is_public = models.BooleanField(default=True)
    is_free = models.BooleanField(default=True)
    is_featured = models.BooleanField(default=False)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0)]
    )

    # Cached aggregates, maintained by catalog.counters
    like_count = models.PositiveIntegerField(default=0, db_index=True)
    comment_count = models.PositiveIntegerField(default=0)
    download_count = models.PositiveIntegerField(default=0, db_index=True)
    view_count = models.PositiveIntegerField(default=0, db_index=True)
    # Set when a counter update gave up; cleared by reconcile
    counters_stale = models.BooleanField(default=False)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = '3D model'
        indexes = [
            models.Index(fields=['is_public', '-created_at']),
        ]

    @property
    def tag_list(self) -> list[str]:
        return [tag for tag in self.tags.split(',') if tag]

    @property
    def download_name(self) -> str:
        return f"{self.title}.{self.file_type}"

    def is_visible_to(self, user) -> bool:
        if self.is_public:
            return True
        return bool(user and user.is_authenticated and user.id == self.owner_id)

    def __str__(self):
        return f"{self.title[:50]} by {self.owner.username}"


class Like(models.Model):
    """
    One user's like on a model.

    The unique constraint makes a concurrent double-like fail with
    IntegrityError instead of creating two rows.
    """
    model = models.ForeignKey(
        Model3D,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='likes'
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['model', 'user'],
                name='unique_like_per_user_per_model'
            )
        ]
        indexes = [
            models.Index(fields=['model', 'created_at']),
        ]

    def __str__(self):
        return f"{self.user.username} liked {self.model_id}"


class Comment(models.Model):
    """Threaded comment. Replies are deleted with their parent."""
    model = models.ForeignKey(
        Model3D,
        on_delete=models.CASCADE,
        related_name='comments',
        db_index=True
    )
    author = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='comments'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='replies',
        db_index=True
    )
    content = models.TextField(
        max_length=1000,
        validators=[MinLengthValidator(1)]
    )
    depth = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['model', 'created_at']),
            models.Index(fields=['parent', 'created_at']),
        ]

    def __str__(self):
        return f"Comment by {self.author.username} on {self.model_id}"


class Order(models.Model):
    """
    Simulated purchase of a paid model.

    No gateway is involved: services.purchase_model decides the outcome
    from the payment token.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'
        REFUNDED = 'refunded', 'Refunded'

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='orders'
    )
    model = models.ForeignKey(
        Model3D,
        on_delete=models.CASCADE,
        related_name='orders'
    )
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='usd')
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    payment_method = models.CharField(max_length=50, blank=True)
    payment_reference = models.CharField(max_length=255, blank=True)
    billing_address = models.JSONField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'model', 'status']),
        ]

    def __str__(self):
        return f"Order {self.id}: {self.user.username} / {self.model_id} ({self.status})"


class Download(models.Model):
    """Append-only download record. user is NULL for anonymous downloads."""
    model = models.ForeignKey(
        Model3D,
        on_delete=models.CASCADE,
        related_name='downloads'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='downloads'
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='downloads'
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['model', 'created_at']),
        ]

    def __str__(self):
        who = self.user.username if self.user else 'anonymous'
        return f"{who} downloaded {self.model_id}"


class ModelView(models.Model):
    """Append-only view record, one per detail page render."""
    model = models.ForeignKey(
        Model3D,
        on_delete=models.CASCADE,
        related_name='views'
    )
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='model_views'
    )
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['model', 'created_at']),
        ]

    def __str__(self):
        return f"View of {self.model_id} at {self.created_at:%Y-%m-%d %H:%M}"


# ============================================================================
# COUNTER MAPPING
# ============================================================================
# FactKind -> (cached field on Model3D, reverse relation to the fact table)
COUNTER_FIELDS = {
    FactKind.LIKE: 'like_count',
    FactKind.COMMENT: 'comment_count',
    FactKind.DOWNLOAD: 'download_count',
    FactKind.VIEW: 'view_count',
}

FACT_MODELS = {
    FactKind.LIKE: Like,
    FactKind.COMMENT: Comment,
    FactKind.DOWNLOAD: Download,
    FactKind.VIEW: ModelView,
}
