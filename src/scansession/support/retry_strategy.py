from scansession.support.mixins import CommonEqualityMixin


class RetryStrategy:
    """
    Decides if a failed operation is attempted again. Called with the number of attempts made so far.
    The base strategy never retries.
    """
    def __call__(self, attempts):
        return False


class BoundedRetryStrategy(RetryStrategy, CommonEqualityMixin):

    def __init__(self, max_retries=5):
        """
        :param max_retries: the total number of attempts allowed before the failure is final.
        """
        if max_retries < 0:
            raise ValueError("max_retries must not be negative: %s" % max_retries)
        self.max_retries = max_retries

    def __call__(self, attempts):
        """
        :param attempts: how many times the operation was tried, including the one that just failed.
        :return: True while the attempts are below the ceiling.
        """
        return attempts < self.max_retries
