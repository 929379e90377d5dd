"""
DRF Serializers
===============

Serializers handle:
1. Validation of incoming data (uploads, comments, profile edits, orders)
2. Transformation of model instances to JSON
3. Nested comment tree serialization

DESIGN DECISIONS:
-----------------
1. Separate serializers for list vs detail views
2. Cached counters are always read-only; no serializer ever writes them
3. Metadata edits save with update_fields so a stale instance cannot
   overwrite counters changed by concurrent requests
"""

import os

from django.conf import settings
from django.contrib.auth import password_validation
from django.contrib.auth.models import User
from rest_framework import serializers

from .models import Comment, Download, Model3D, Order, Profile

CACHED_COUNTERS = ['like_count', 'comment_count', 'download_count', 'view_count']
MAX_TAGS = 10
MAX_TAG_LENGTH = 20


class UserSerializer(serializers.ModelSerializer):
    """Minimal user representation for embedding in other objects."""
    avatar_url = serializers.CharField(source='profile.avatar_url', read_only=True, default='')
    is_verified = serializers.BooleanField(source='profile.is_verified', read_only=True, default=False)

    class Meta:
        model = User
        fields = ['id', 'username', 'avatar_url', 'is_verified']
        read_only_fields = fields


# ============================================================================
# ACCOUNTS
# ============================================================================

class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)
    role = serializers.ChoiceField(
        choices=[Profile.Role.USER, Profile.Role.CREATOR],
        default=Profile.Role.USER,
        write_only=True
    )

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'role']

    def validate(self, attrs):
        candidate = User(username=attrs.get('username'), email=attrs.get('email', ''))
        password_validation.validate_password(attrs['password'], candidate)
        return attrs

    def create(self, validated_data):
        role = validated_data.pop('role', Profile.Role.USER)
        user = User.objects.create_user(**validated_data)
        Profile.objects.filter(user=user).update(role=role)
        user.profile.refresh_from_db()
        return user


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)


class ProfileSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)

    class Meta:
        model = Profile
        fields = [
            'username',
            'email',
            'display_name',
            'bio',
            'avatar_url',
            'website',
            'location',
            'social_links',
            'role',
            'is_verified',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['role', 'is_verified', 'created_at', 'updated_at']

    def validate_social_links(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Expected an object of {network: url}.')
        return value


class PublicProfileSerializer(serializers.ModelSerializer):
    """Profile page: user + profile + follow/model counts."""
    display_name = serializers.CharField(source='profile.display_name', read_only=True)
    bio = serializers.CharField(source='profile.bio', read_only=True)
    avatar_url = serializers.CharField(source='profile.avatar_url', read_only=True)
    website = serializers.CharField(source='profile.website', read_only=True)
    location = serializers.CharField(source='profile.location', read_only=True)
    social_links = serializers.JSONField(source='profile.social_links', read_only=True)
    role = serializers.CharField(source='profile.role', read_only=True)
    is_verified = serializers.BooleanField(source='profile.is_verified', read_only=True)
    model_count = serializers.SerializerMethodField()
    follower_count = serializers.SerializerMethodField()
    following_count = serializers.SerializerMethodField()
    is_following = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'username',
            'display_name',
            'bio',
            'avatar_url',
            'website',
            'location',
            'social_links',
            'role',
            'is_verified',
            'date_joined',
            'model_count',
            'follower_count',
            'following_count',
            'is_following',
        ]

    def get_model_count(self, obj):
        return obj.models3d.filter(is_public=True).count()

    def get_follower_count(self, obj):
        return obj.follower_set.count()

    def get_following_count(self, obj):
        return obj.following_set.count()

    def get_is_following(self, obj):
        request = self.context.get('request')
        if not request or not request.user.is_authenticated:
            return False
        return obj.follower_set.filter(follower=request.user).exists()


# ============================================================================
# MODELS
# ============================================================================

class Model3DListSerializer(serializers.ModelSerializer):
    """
    Listing representation.

    Counts come from the cached columns, not COUNT(*) joins.
    is_liked comes from a set precomputed by the view (one query per page).
    """
    creator = UserSerializer(source='owner', read_only=True)
    tags = serializers.ListField(source='tag_list', read_only=True)
    is_liked = serializers.SerializerMethodField()

    class Meta:
        model = Model3D
        fields = [
            'id',
            'title',
            'description',
            'category',
            'tags',
            'license',
            'thumbnail_url',
            'file_type',
            'file_size',
            'is_public',
            'is_free',
            'is_featured',
            'price',
            'creator',
            *CACHED_COUNTERS,
            'is_liked',
            'created_at',
        ]
        read_only_fields = fields

    def get_is_liked(self, obj):
        liked_ids = self.context.get('liked_ids')
        return bool(liked_ids) and obj.id in liked_ids


class CommentSerializer(serializers.ModelSerializer):
    """Single comment without replies; CommentTreeSerializer nests them."""
    author = UserSerializer(read_only=True)

    class Meta:
        model = Comment
        fields = ['id', 'content', 'author', 'parent', 'depth', 'created_at']
        read_only_fields = fields


class CommentTreeSerializer(serializers.Serializer):
    """
    Serializer for the pre-built tree from queries.build_comment_tree().

    {"comment": {...}, "replies": [...]}
    """
    comment = CommentSerializer()
    replies = serializers.SerializerMethodField()

    def get_replies(self, obj):
        return CommentTreeSerializer(obj['replies'], many=True).data


class Model3DDetailSerializer(Model3DListSerializer):
    """Detail page: listing fields plus comment tree and owner-only extras."""
    comments = serializers.SerializerMethodField()
    is_owner = serializers.SerializerMethodField()
    has_purchased = serializers.SerializerMethodField()

    class Meta(Model3DListSerializer.Meta):
        fields = Model3DListSerializer.Meta.fields + [
            'comments',
            'is_owner',
            'has_purchased',
            'updated_at',
        ]
        read_only_fields = fields

    def get_comments(self, obj):
        return CommentTreeSerializer(self.context.get('comment_tree', []), many=True).data

    def get_is_owner(self, obj):
        request = self.context.get('request')
        return bool(request and request.user.is_authenticated and request.user.id == obj.owner_id)

    def get_has_purchased(self, obj):
        return bool(self.context.get('has_purchased', False))


def _normalize_tags(value) -> list[str]:
    if isinstance(value, str):
        value = value.split(',')
    tags = []
    for tag in value:
        tag = str(tag).strip().lower()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise serializers.ValidationError(f'Tags must be at most {MAX_TAG_LENGTH} characters.')
        if ',' in tag:
            raise serializers.ValidationError('Tags cannot contain commas.')
        if tag not in tags:
            tags.append(tag)
    if len(tags) > MAX_TAGS:
        raise serializers.ValidationError(f'At most {MAX_TAGS} tags allowed.')
    return tags


class TagsField(serializers.Field):
    """Accepts a list or a comma-separated string; stores comma-separated."""

    def to_internal_value(self, data):
        if not isinstance(data, (list, tuple, str)):
            raise serializers.ValidationError('Expected a list of tags.')
        return ','.join(_normalize_tags(data))

    def to_representation(self, value):
        return [tag for tag in value.split(',') if tag]


class Model3DUploadSerializer(serializers.ModelSerializer):
    """
    Multipart upload of a new model.

    file_size and file_type are derived from the uploaded file.
    owner is set from request.user in the view.
    """
    tags = TagsField(required=False, default='')
    # Explicit defaults: an omitted multipart checkbox would otherwise read as False
    is_public = serializers.BooleanField(default=True)
    is_free = serializers.BooleanField(default=True)

    class Meta:
        model = Model3D
        fields = [
            'id',
            'title',
            'description',
            'category',
            'tags',
            'license',
            'file',
            'thumbnail_url',
            'is_public',
            'is_free',
            'price',
            'file_size',
            'file_type',
            *CACHED_COUNTERS,
            'created_at',
        ]
        read_only_fields = ['id', 'file_size', 'file_type', *CACHED_COUNTERS, 'created_at']

    def validate_title(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Title cannot be empty.')
        return value

    def validate_file(self, value):
        extension = os.path.splitext(value.name)[1].lstrip('.').lower()
        if extension not in settings.ALLOWED_MODEL_EXTENSIONS:
            raise serializers.ValidationError(
                'Invalid file type. Only 3D model files are allowed '
                f"({', '.join(settings.ALLOWED_MODEL_EXTENSIONS)})."
            )
        if value.size > settings.MAX_UPLOAD_SIZE:
            raise serializers.ValidationError(
                f'File too large (max {settings.MAX_UPLOAD_SIZE} bytes).'
            )
        return value

    def validate(self, attrs):
        is_free = attrs.get('is_free', getattr(self.instance, 'is_free', True))
        price = attrs.get('price', getattr(self.instance, 'price', 0))
        if is_free:
            attrs['price'] = 0
        elif not price or price <= 0:
            raise serializers.ValidationError({'price': 'Paid models need a price above zero.'})
        return attrs

    def create(self, validated_data):
        upload = validated_data['file']
        validated_data['file_size'] = upload.size
        validated_data['file_type'] = os.path.splitext(upload.name)[1].lstrip('.').lower()
        return super().create(validated_data)


class Model3DUpdateSerializer(Model3DUploadSerializer):
    """
    Metadata edit by the owner. The file itself cannot be replaced.

    Saves with update_fields: only the edited columns are written.
    """

    class Meta(Model3DUploadSerializer.Meta):
        read_only_fields = Model3DUploadSerializer.Meta.read_only_fields + ['file']

    def update(self, instance, validated_data):
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data.keys(), 'updated_at'])
        return instance


class ModelStatusSerializer(serializers.Serializer):
    is_public = serializers.BooleanField()


# ============================================================================
# COMMENTS
# ============================================================================

class CommentCreateSerializer(serializers.Serializer):
    """
    Validates that:
    1. Parent comment (if provided) belongs to the same model
    2. Content is not empty
    """
    content = serializers.CharField(max_length=1000)
    parent = serializers.PrimaryKeyRelatedField(
        queryset=Comment.objects.all(),
        required=False,
        allow_null=True
    )

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError('Comment cannot be empty.')
        return value.strip()

    def validate(self, attrs):
        parent = attrs.get('parent')
        model_id = self.context.get('model_id')
        if parent and parent.model_id != model_id:
            raise serializers.ValidationError({
                'parent': 'Parent comment must belong to the same model.'
            })
        return attrs


# ============================================================================
# DOWNLOADS / VIEWS / ORDERS
# ============================================================================

class ModelSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Model3D
        fields = ['id', 'title', 'description', 'thumbnail_url', 'category']
        read_only_fields = fields


class DownloadSerializer(serializers.ModelSerializer):
    model = ModelSummarySerializer(read_only=True)

    class Meta:
        model = Download
        fields = ['id', 'model', 'order', 'created_at']
        read_only_fields = fields


class ActivitySerializer(serializers.Serializer):
    """A view or download row in the owner's recent-activity lists."""
    id = serializers.IntegerField()
    user = UserSerializer(allow_null=True)
    created_at = serializers.DateTimeField()


class PurchaseSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=50, default='card')
    payment_token = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    billing_address = serializers.JSONField(required=False, allow_null=True, default=None)


class RefundSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class OrderSerializer(serializers.ModelSerializer):
    model = ModelSummarySerializer(read_only=True)
    buyer = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'model',
            'buyer',
            'amount',
            'currency',
            'status',
            'payment_method',
            'payment_reference',
            'billing_address',
            'refund_reason',
            'refunded_at',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


# ============================================================================
# DASHBOARD
# ============================================================================

class TopModelSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    view_count = serializers.IntegerField()
    download_count = serializers.IntegerField()
    like_count = serializers.IntegerField()
