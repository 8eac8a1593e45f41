"""WaitWise queue management and usage billing API"""
