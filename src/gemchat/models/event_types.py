"""
Event Type Constants

Everything the chat session controller publishes for a presentation layer.
"""

SESSIONS_CHANGED = "SESSIONS_CHANGED"
"""
Dispatched after the session collection changed (add, delete, retitle, new messages).

Payload:
    session_ids (list[str]): Session ids in display order (newest first)
"""

ACTIVE_SESSION_CHANGED = "ACTIVE_SESSION_CHANGED"
"""
Dispatched when the active session changes, including to "no session" on a new chat.

Payload:
    previous_session_id (str, optional): Id of the previously active session
    message_count (int): Number of messages in the working list
"""

MODEL_CHANGED = "MODEL_CHANGED"
"""
Dispatched after the selected model changed and the context was rebuilt.

Payload:
    model_id (str): The newly selected model
    history_length (int): Number of turns replayed into the new context
"""

STREAM_STARTED = "STREAM_STARTED"
"""
Dispatched once the placeholder model message has been appended.

Payload:
    message_id (str): Id of the in-flight message
    model_id (str): Model generating the reply
"""

MESSAGE_UPDATED = "MESSAGE_UPDATED"
"""
Dispatched after each fragment was merged into the in-flight message.

Payload:
    message_id (str): Id of the in-flight message
    text_delta (str): Text appended by this fragment (may be empty)
    has_image (bool): Whether the message now carries a generated image
    has_sources (bool): Whether the message now carries citation sources
"""

STREAM_ENDED = "STREAM_ENDED"
"""
Dispatched when the in-flight message was finalized without error.

Payload:
    message_id (str): Id of the finalized message
"""

STREAM_FAILED = "STREAM_FAILED"
"""
Dispatched when generation failed and the error notice was appended.

Payload:
    message_id (str): Id of the interrupted message
    error_message_id (str): Id of the appended error notice
    error (str): Description of the underlying failure
"""
