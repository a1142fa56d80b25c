from fastapi import Depends, Request

from .container import ApplicationContainer


def get_container(request: Request) -> ApplicationContainer:
    container = getattr(request.app.state, "container", None)
    if not container:
        raise RuntimeError("Application container not initialised.")
    return container


def get_activity_logger(container: ApplicationContainer = Depends(get_container)):
    return container.activity_logger


def get_subscription_service(container: ApplicationContainer = Depends(get_container)):
    return container.subscription_service


def get_webhook_processor(container: ApplicationContainer = Depends(get_container)):
    return container.webhook_processor


def get_user_service(container: ApplicationContainer = Depends(get_container)):
    return container.user_service


def get_query_service(container: ApplicationContainer = Depends(get_container)):
    return container.query_service
