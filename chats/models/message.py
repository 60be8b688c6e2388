from django.db import models


class Message(models.Model):
    """
    One chat message. The auto-incrementing id doubles as the per-session
    sequence number: feeds order and resume by it, never by `created_at`.
    """

    session = models.ForeignKey(
        "chats.ChatSession",
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender_id = models.CharField(max_length=64)
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["session", "id"], name="idx_message_session_seq"),
        ]

    def __str__(self):
        return f"Message {self.id} | session={self.session_id} | sender={self.sender_id}"
