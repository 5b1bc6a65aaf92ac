import logging

from schemas import Notification

NOTIFICATIONS_COLLECTION = 'notifications'


class NotificationSink:
    """
    Fire-and-forget notifications stored in Firestore.
    A failed write is logged and never propagates into the workflow.
    """

    def __init__(self, client, collection=NOTIFICATIONS_COLLECTION):
        self._collection = client.collection(collection)

    def notify(self, notification: Notification) -> None:
        target = notification.classroomId or notification.studentId
        try:
            self._collection.add(notification.model_dump())
            logging.info(f"Queued {notification.type} notification for {target} "
                         f"(submission {notification.submissionId})")
        except Exception as e:
            logging.error(f"Failed to store {notification.type} notification for {target}. Error: {e}",
                          exc_info=True)
